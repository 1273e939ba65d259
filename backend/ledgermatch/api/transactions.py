"""
Transaction API endpoints.
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import or_
from sqlalchemy.orm import Session

from ledgermatch.dependencies import get_db, get_household_id
from ledgermatch.models.transaction import CategorySource, Transaction, TransactionStatus
from ledgermatch.schemas.transaction import (
    TransactionListResponse,
    TransactionResponse,
    TransactionUpdate,
)
from ledgermatch.services import categorization_service

router = APIRouter(prefix="/transactions", tags=["transactions"])


@router.get("", response_model=TransactionListResponse)
def list_transactions(
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=100),
    status: Optional[TransactionStatus] = None,
    category: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    search: Optional[str] = None,
    include_duplicates: bool = False,
    household_id: str = Depends(get_household_id),
    db: Session = Depends(get_db)
):
    """List a household's transactions with filtering and pagination"""
    query = db.query(Transaction).filter(Transaction.household_id == household_id)

    if not include_duplicates:
        query = query.filter(Transaction.is_duplicate == False)
    if status:
        query = query.filter(Transaction.status == status)
    if category:
        query = query.filter(Transaction.category == category)
    if start_date:
        query = query.filter(Transaction.date >= start_date)
    if end_date:
        query = query.filter(Transaction.date <= end_date)
    if search:
        search_term = f"%{search}%"
        query = query.filter(
            or_(
                Transaction.merchant_raw.ilike(search_term),
                Transaction.merchant_normalized.ilike(search_term)
            )
        )

    total = query.count()

    query = query.order_by(Transaction.date.desc(), Transaction.created_at.asc())
    query = query.offset((page - 1) * per_page).limit(per_page)

    transactions = query.all()
    pages = (total + per_page - 1) // per_page

    return TransactionListResponse(
        items=[TransactionResponse.model_validate(t) for t in transactions],
        total=total,
        page=page,
        pages=pages
    )


def _get_transaction(db: Session, household_id: str, transaction_id: str) -> Transaction:
    transaction = db.query(Transaction).filter(
        Transaction.id == transaction_id,
        Transaction.household_id == household_id
    ).first()
    if not transaction:
        raise HTTPException(status_code=404, detail="Transaction not found")
    return transaction


@router.get("/{transaction_id}", response_model=TransactionResponse)
def get_transaction(
    transaction_id: str,
    household_id: str = Depends(get_household_id),
    db: Session = Depends(get_db)
):
    """Get a single transaction"""
    return TransactionResponse.model_validate(_get_transaction(db, household_id, transaction_id))


@router.patch("/{transaction_id}", response_model=TransactionResponse)
def update_transaction(
    transaction_id: str,
    update: TransactionUpdate,
    household_id: str = Depends(get_household_id),
    db: Session = Depends(get_db)
):
    """Update a transaction; a category change is remembered for the merchant"""
    transaction = _get_transaction(db, household_id, transaction_id)

    category_changed = bool(update.category) and update.category != transaction.category

    update_data = update.model_dump(exclude_unset=True)
    for field, value in update_data.items():
        setattr(transaction, field, value)

    if category_changed:
        transaction.category_source = CategorySource.user_manual
        transaction.category_confidence = 100

    db.commit()
    db.refresh(transaction)

    if category_changed:
        merchant = transaction.merchant_normalized or transaction.merchant_raw
        categorization_service.save_merchant_memory(db, household_id, merchant, transaction.category)

    return TransactionResponse.model_validate(transaction)
