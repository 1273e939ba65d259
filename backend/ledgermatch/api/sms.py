"""
SMS ingestion and CC slip confirmation endpoints.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ledgermatch.dependencies import get_db, get_household_id
from ledgermatch.schemas.sms import (
    CcSlipData,
    CcSlipMatchResult,
    FlagResponse,
    ParsedSms,
    SmsBatchParseRequest,
    SmsIngestResponse,
    SmsParseRequest,
    SmsTransactionResponse,
)
from ledgermatch.schemas.transaction import TransactionResponse
from ledgermatch.services import sms_dedup_service, sms_parser

router = APIRouter(prefix="/sms", tags=["sms"])


@router.post("/parse", response_model=ParsedSms)
def parse_sms(request: SmsParseRequest):
    """Parse one SMS without storing anything"""
    return sms_parser.parse_sms(request.message, request.skip_trigger_check)


@router.post("/parse-batch", response_model=List[ParsedSms])
def parse_sms_batch(request: SmsBatchParseRequest):
    return sms_parser.parse_sms_batch(request.messages, request.skip_trigger_check)


@router.post("/ingest", response_model=SmsIngestResponse)
def ingest_sms(
    request: SmsParseRequest,
    household_id: str = Depends(get_household_id),
    db: Session = Depends(get_db)
):
    """Parse an SMS and, when valid, create its provisional transaction"""
    parsed = sms_parser.parse_sms(request.message, request.skip_trigger_check)
    if not parsed.is_valid or parsed.amount is None or not parsed.card_ending:
        return SmsIngestResponse(status="invalid", parsed=parsed)

    try:
        sms = sms_dedup_service.store_sms_transaction(db, household_id, parsed)
    except sms_dedup_service.DuplicateSmsError as e:
        raise HTTPException(status_code=409, detail=str(e))

    return SmsIngestResponse(
        status="created",
        sms_id=sms.id,
        transaction_id=sms.transaction_id,
        parsed=parsed
    )


@router.post("/match-cc-slip", response_model=CcSlipMatchResult)
def match_cc_slip(
    cc_slip: CcSlipData,
    card_ending: Optional[str] = Query(None, pattern=r"^\d{4}$"),
    household_id: str = Depends(get_household_id),
    db: Session = Depends(get_db)
):
    """Find the SMS a statement row confirms (no writes)"""
    return sms_dedup_service.find_matching_sms_for_cc_slip(
        db, household_id, cc_slip.amount, cc_slip.date, card_ending
    )


@router.post("/{sms_id}/merge-cc-slip", response_model=TransactionResponse)
def merge_cc_slip(
    sms_id: str,
    cc_slip: CcSlipData,
    household_id: str = Depends(get_household_id),
    db: Session = Depends(get_db)
):
    sms = sms_dedup_service.get_sms_transaction(db, household_id, sms_id)
    if not sms:
        raise HTTPException(status_code=404, detail="SMS transaction not found")

    try:
        transaction = sms_dedup_service.merge_cc_slip_with_sms(db, sms.id, cc_slip)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return TransactionResponse.model_validate(transaction)


@router.get("/unmatched", response_model=List[SmsTransactionResponse])
def list_unmatched_sms(
    older_than_days: Optional[int] = Query(None, ge=0),
    household_id: str = Depends(get_household_id),
    db: Session = Depends(get_db)
):
    """SMS purchases never confirmed by a statement"""
    return [
        SmsTransactionResponse.model_validate(s)
        for s in sms_dedup_service.get_unmatched_sms_transactions(db, household_id, older_than_days)
    ]


@router.post("/flag-unmatched", response_model=FlagResponse)
def flag_unmatched_sms(
    older_than_days: Optional[int] = Query(None, ge=0),
    household_id: str = Depends(get_household_id),
    db: Session = Depends(get_db)
):
    count = sms_dedup_service.flag_unmatched_sms_transactions(db, household_id, older_than_days)
    return FlagResponse(count=count, details=f"Flagged {count} unconfirmed SMS transactions")


@router.get("/by-transaction/{transaction_id}", response_model=SmsTransactionResponse)
def get_sms_for_transaction(
    transaction_id: str,
    household_id: str = Depends(get_household_id),
    db: Session = Depends(get_db)
):
    sms = sms_dedup_service.get_sms_source_for_transaction(db, household_id, transaction_id)
    if not sms:
        raise HTTPException(status_code=404, detail="No SMS for this transaction")
    return SmsTransactionResponse.model_validate(sms)
