"""
Main API router.
"""

from fastapi import APIRouter
from ledgermatch.api import categorize, duplicates, imports, receipts, reconciliation, sms, transactions

api_router = APIRouter()

api_router.include_router(sms.router)
api_router.include_router(receipts.router)
api_router.include_router(duplicates.router)
api_router.include_router(reconciliation.router)
api_router.include_router(imports.router)
api_router.include_router(categorize.router)
api_router.include_router(transactions.router)
