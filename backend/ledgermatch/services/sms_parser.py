"""
Credit card SMS parser.

Turns one raw card-alert SMS into a provider-tagged, confidence-scored
purchase candidate. Each provider has its own regexes; when one of them
misses, a prioritized list of generic patterns is tried and the first hit
wins.

Confidence is additive: card ending 30, amount 40, merchant 20 and a date
read from the text 10. A trigger-checked message needs 70 to be valid. When
the caller already knows the text is a transaction alert (for example from
an email subject) the trigger check is skipped and 40 is enough.
"""

import logging
import re
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional, Pattern, Tuple

from ledgermatch.config import settings
from ledgermatch.models.sms_transaction import CardProvider
from ledgermatch.schemas.sms import ParsedSms

logger = logging.getLogger(__name__)

VALID_CONFIDENCE = 70
VALID_CONFIDENCE_WITHOUT_TRIGGER = 40

CARD_ENDING_POINTS = 30
AMOUNT_POINTS = 40
MERCHANT_POINTS = 20
DATE_POINTS = 10

SMS_TRIGGERS = [
    "אושרה עסקה",
    "בוצעה עסקה",
    "עסקה אושרה",
    "בוצע חיוב",
    "חיוב בכרטיס",
]

# Both the ASCII quote and the Hebrew gershayim appear in the wild
_SHEKEL = r'(?:ש["״]ח|ILS|₪)'
_ANY_CURRENCY = r'(?:ש["״]ח|ILS|₪|USD|EUR|GBP|\$|€|£)'
_NUMBER = r"([\d,]+\.?\d*)"
_MERCHANT_END = r"(?:\s*[.*]|\s+ב?תאריך|\s*למידע|\s*לפרטים|$)"

PROVIDER_PATTERNS: Dict[CardProvider, Dict[str, Pattern]] = {
    CardProvider.isracard: {
        "card_ending": re.compile(r"בכרטיסך(?:\s+המסתיים\s+ב-?)?\s*(\d{4})"),
        "amount": re.compile(r"בסך\s+" + _NUMBER),
        "merchant": re.compile(_ANY_CURRENCY + r"\s+ב-?\s*([^.*]+?)" + _MERCHANT_END),
        "date": re.compile(r"ב-?\s*(\d{1,2})/(\d{1,2})"),
    },
    CardProvider.cal: {
        "card_ending": re.compile(r"\*(\d{4})"),
        "amount": re.compile(r"בסך\s+" + _NUMBER + r"\s*" + _SHEKEL),
        "merchant": re.compile(r"ב-([^*\d][^*\d]*?)" + _MERCHANT_END),
        "date": re.compile(r"(\d{1,2})/(\d{1,2})"),
    },
    CardProvider.max: {
        "card_ending": re.compile(r"\*(\d{4})"),
        "amount": re.compile(r"בסך\s+" + _NUMBER + r"\s*" + _SHEKEL),
        "merchant": re.compile(_SHEKEL + r"\s*ב-?\s*([^*]+?)\s*\*"),
    },
    CardProvider.leumi: {
        "card_ending": re.compile(r"כרטיס\s*(\d{4})"),
        "amount": re.compile(_NUMBER + r"\s*" + _SHEKEL),
        "merchant": re.compile(_SHEKEL + r"\s*-\s*(.+?)(?:\s*$|\s*\.)"),
    },
    CardProvider.unknown: {},
}

GENERIC_PATTERNS: Dict[str, List[Pattern]] = {
    "card_ending": [
        re.compile(r"(?:המסתיים|המסתיימת)\s*ב-?\s*(\d{4})"),
        re.compile(r"\*(\d{4})"),
        re.compile(r"כרטיס\S*\s*(\d{4})"),
    ],
    "amount": [
        re.compile(r"בסך\s+" + _NUMBER),
        re.compile(_NUMBER + r"\s*" + _ANY_CURRENCY),
        re.compile(r"(?:₪|\$|€|£)\s*" + _NUMBER),
    ],
    "merchant": [
        re.compile(_ANY_CURRENCY + r"\s+ב-?\s*([^.*\d][^.*]*?)" + _MERCHANT_END),
        re.compile(r"ב-([^.*\d][^.*]*?)" + _MERCHANT_END),
    ],
    "date": [
        re.compile(r"(?<!\d)(\d{1,2})/(\d{1,2})(?:/\d{2,4})?(?!\d)"),
    ],
}

FOREIGN_CURRENCY_MARKERS: List[Tuple[str, Pattern]] = [
    ("USD", re.compile(r"USD|\$")),
    ("EUR", re.compile(r"EUR|€")),
    ("GBP", re.compile(r"GBP|£")),
]

P2P_PATTERN = re.compile(r"BIT|ביט|PAYBOX|פייבוקס", re.IGNORECASE)
BIT_TRANSFER_PATTERN = re.compile(r"העברה\s*ב\s*BIT", re.IGNORECASE)
PAYBOX_PATTERN = re.compile(r"PAYBOX|פייבוקס", re.IGNORECASE)


def is_credit_card_sms(text: str) -> bool:
    """Check if text is a credit card SMS notification"""
    return any(trigger in text for trigger in SMS_TRIGGERS)


def detect_provider(text: str) -> CardProvider:
    """Detect the issuing provider from textual fingerprints."""
    lower = text.lower()

    if "isracard" in lower or "בכרטיסך" in text:
        return CardProvider.isracard
    if re.search(r"\bcal\b", lower) or "כאל" in text:
        return CardProvider.cal
    if re.search(r"\bmax\b", lower) or "מקס" in text:
        return CardProvider.max
    if "לאומי קארד" in text or "לאומי card" in lower or "leumi" in lower:
        return CardProvider.leumi

    return CardProvider.unknown


def is_valid_confidence(confidence: int, skip_trigger_check: bool = False) -> bool:
    threshold = VALID_CONFIDENCE_WITHOUT_TRIGGER if skip_trigger_check else VALID_CONFIDENCE
    return confidence >= threshold


def _search(text: str, provider: CardProvider, field: str) -> Optional[re.Match]:
    """Provider pattern first, then generic fallbacks in priority order."""
    specific = PROVIDER_PATTERNS[provider].get(field)
    if specific is not None:
        match = specific.search(text)
        if match:
            return match

    for pattern in GENERIC_PATTERNS[field]:
        match = pattern.search(text)
        if match:
            return match
    return None


def parse_amount(amount_str: Optional[str]) -> Optional[Decimal]:
    if not amount_str:
        return None
    cleaned = amount_str.replace(",", "").strip()
    try:
        return Decimal(cleaned)
    except InvalidOperation:
        return None


def parse_day_month(day: str, month: str, today: Optional[date] = None) -> Optional[date]:
    """
    DD/MM to a full date. A month later than the current one belongs to the
    previous year (late-delivered messages around New Year).
    """
    today = today or date.today()
    try:
        d = int(day)
        m = int(month)
    except ValueError:
        return None

    if not (1 <= d <= 31 and 1 <= m <= 12):
        return None

    year = today.year
    if m > today.month:
        year -= 1

    try:
        return date(year, m, d)
    except ValueError:
        return None


def clean_merchant_name(merchant: Optional[str]) -> Optional[str]:
    if not merchant:
        return None

    cleaned = merchant.strip()
    cleaned = re.sub(r"[\s.]+$", "", cleaned)
    cleaned = re.sub(r"\s*למידע.*$", "", cleaned)
    cleaned = re.sub(r"\s*לפרטים.*$", "", cleaned)
    cleaned = cleaned.strip(" -")
    return cleaned or None


def detect_currency(text: str) -> str:
    for code, marker in FOREIGN_CURRENCY_MARKERS:
        if marker.search(text):
            return code
    return settings.local_currency


def _p2p_merchant(text: str) -> Optional[str]:
    if not P2P_PATTERN.search(text):
        return None
    if BIT_TRANSFER_PATTERN.search(text):
        return "BIT Transfer"
    if PAYBOX_PATTERN.search(text):
        return "PayBox"
    return "BIT"


def parse_sms(
    sms_text: str,
    skip_trigger_check: bool = False,
    today: Optional[date] = None
) -> ParsedSms:
    """
    Parse a credit card SMS message into a structured purchase candidate.

    Args:
        sms_text: The raw SMS message text
        skip_trigger_check: Caller already knows this is a transaction SMS
        today: Reference date for year inference and the missing-date default

    Returns:
        ParsedSms; ``is_valid`` is False when the evidence is insufficient
    """
    text = sms_text.strip()
    today = today or date.today()

    if not skip_trigger_check and not is_credit_card_sms(text):
        logger.info("Not a credit card SMS")
        return ParsedSms(
            is_valid=False,
            currency=settings.local_currency,
            provider=CardProvider.unknown,
            raw_message=text,
            confidence=0,
        )

    provider = detect_provider(text)
    logger.debug("Detected SMS provider: %s", provider.value)

    card_match = _search(text, provider, "card_ending")
    card_ending = card_match.group(1) if card_match else None

    amount_match = _search(text, provider, "amount")
    amount = parse_amount(amount_match.group(1)) if amount_match else None

    currency = detect_currency(text)

    transaction_date = None
    date_match = _search(text, provider, "date")
    if date_match:
        transaction_date = parse_day_month(date_match.group(1), date_match.group(2), today)
    date_found = transaction_date is not None

    merchant_match = _search(text, provider, "merchant")
    merchant_name = clean_merchant_name(merchant_match.group(1)) if merchant_match else None
    if not merchant_name:
        merchant_name = _p2p_merchant(text)

    confidence = 0
    if card_ending:
        confidence += CARD_ENDING_POINTS
    if amount is not None:
        confidence += AMOUNT_POINTS
    if merchant_name:
        confidence += MERCHANT_POINTS
    if date_found:
        confidence += DATE_POINTS

    is_valid = is_valid_confidence(confidence, skip_trigger_check)

    logger.info(
        "Parsed SMS: provider=%s card=%s amount=%s %s merchant=%s date=%s confidence=%d valid=%s",
        provider.value, card_ending, amount, currency, merchant_name,
        transaction_date, confidence, is_valid
    )

    return ParsedSms(
        is_valid=is_valid,
        card_ending=card_ending,
        merchant_name=merchant_name,
        amount=amount,
        currency=currency,
        transaction_date=transaction_date or today,
        provider=provider,
        raw_message=text,
        confidence=confidence,
    )


def parse_sms_batch(
    messages: List[str],
    skip_trigger_check: bool = False,
    today: Optional[date] = None
) -> List[ParsedSms]:
    """Parse each message independently, preserving order."""
    return [parse_sms(message, skip_trigger_check, today) for message in messages]
