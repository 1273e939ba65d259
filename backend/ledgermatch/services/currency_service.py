"""
Amount and currency comparison, plus the exchange-rate source.
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Dict, NamedTuple, Optional

import httpx

from ledgermatch.config import settings, FxBand

logger = logging.getLogger(__name__)

# Receipts and statements round differently; anything under two agorot is equal
EXACT_TOLERANCE = Decimal("0.02")


class AmountMatch(NamedTuple):
    matches: bool
    is_cross_currency: bool
    is_exact_fx_match: bool


NO_MATCH = AmountMatch(matches=False, is_cross_currency=False, is_exact_fx_match=False)


def _as_decimal(value) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


def amounts_match(
    receipt_amount,
    receipt_currency: str,
    tx_amount,
    tx_currency: str,
    tx_original_amount=None,
    tx_original_currency: Optional[str] = None,
    bands: Optional[Dict[str, FxBand]] = None,
    local_currency: Optional[str] = None
) -> AmountMatch:
    """
    Compare a receipt amount with a transaction amount.

    Priority, first success wins:
    1. The transaction's recorded original charge in the receipt's currency
    2. Same currency
    3. Local-currency transaction inside the receipt amount's FX band

    Ledger amounts are signed, so magnitudes are compared.
    """
    bands = settings.fx_tolerance_bands if bands is None else bands
    local_currency = local_currency or settings.local_currency

    receipt_abs = abs(_as_decimal(receipt_amount))
    tx_abs = abs(_as_decimal(tx_amount))

    if (
        tx_original_currency
        and tx_original_amount is not None
        and receipt_currency == tx_original_currency
    ):
        if abs(receipt_abs - abs(_as_decimal(tx_original_amount))) < EXACT_TOLERANCE:
            return AmountMatch(matches=True, is_cross_currency=False, is_exact_fx_match=True)

    if receipt_currency == tx_currency:
        return AmountMatch(
            matches=abs(receipt_abs - tx_abs) < EXACT_TOLERANCE,
            is_cross_currency=False,
            is_exact_fx_match=False
        )

    band = bands.get(receipt_currency)
    if tx_currency == local_currency and band is not None:
        expected_min = receipt_abs * band.min
        expected_max = receipt_abs * band.max
        if expected_min <= tx_abs <= expected_max:
            return AmountMatch(matches=True, is_cross_currency=True, is_exact_fx_match=False)

    return NO_MATCH


def get_exchange_rate(from_currency: str, to_currency: str) -> Decimal:
    """
    Rate to convert one unit of ``from_currency`` into ``to_currency``.

    Falls back to 1 on any failure so ingestion never blocks; drift is fixed
    by later manual correction.
    """
    if from_currency == to_currency:
        return Decimal("1")

    if not settings.fx_rate_url:
        logger.warning("No FX rate source configured, using 1:1 for %s->%s", from_currency, to_currency)
        return Decimal("1")

    try:
        response = httpx.get(
            settings.fx_rate_url,
            params={"from": from_currency, "to": to_currency},
            timeout=settings.fx_rate_timeout_seconds,
        )
        response.raise_for_status()
        rate = response.json()["rates"][to_currency]
        return Decimal(str(rate))
    except (httpx.HTTPError, KeyError, TypeError, ValueError, InvalidOperation) as e:
        logger.warning("FX rate lookup %s->%s failed, using 1:1: %s", from_currency, to_currency, e)
        return Decimal("1")


def convert_to_local(amount: Decimal, currency: str) -> Decimal:
    """Convert an amount into the ledger's local currency, rounded to agorot."""
    rate = get_exchange_rate(currency, settings.local_currency)
    return (amount * rate).quantize(Decimal("0.01"))
