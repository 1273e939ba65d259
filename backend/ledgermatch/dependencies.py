"""
FastAPI dependencies.
"""

from typing import Generator

from fastapi import Header, HTTPException
from sqlalchemy.orm import Session

from ledgermatch.database import SessionLocal


def get_db() -> Generator[Session, None, None]:
    """
    Dependency for getting database sessions.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_household_id(x_household_id: str = Header(...)) -> str:
    """
    Household scope for the request.

    Household resolution happens upstream (auth gateway); this service only
    trusts the resolved id it is handed.
    """
    household_id = x_household_id.strip()
    if not household_id:
        raise HTTPException(status_code=400, detail="X-Household-Id header is empty")
    return household_id
