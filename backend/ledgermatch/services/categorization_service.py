"""
Transaction categorization.

Pending rows are first matched against the household's merchant memory
(learned from user corrections); whatever is left goes to the category
classifier in concurrent chunks. A chunk that fails or times out only
loses its own rows.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence

from pydantic import ValidationError
from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ledgermatch.ai.client import AIClient, get_ai_client
from ledgermatch.ai.prompts.categorization import CATEGORIZATION_SYSTEM, CATEGORIZATION_USER
from ledgermatch.config import settings
from ledgermatch.models.category import Category
from ledgermatch.models.merchant_memory import MerchantMemory
from ledgermatch.models.transaction import CategorySource, Transaction, TransactionStatus
from ledgermatch.schemas.categorization import CategorizationResult, ClassifierInput, ClassifierOutput

logger = logging.getLogger(__name__)

VERIFY_CONFIDENCE = 70
MEMORY_CONFIDENCE = 100


class ClassifierError(Exception):
    """The classifier returned something we cannot use."""


class CategoryClassifier(ABC):

    @abstractmethod
    async def classify(
        self,
        items: List[ClassifierInput],
        memory: Dict[str, str],
        categories: List[str]
    ) -> List[ClassifierOutput]:
        """Return one output per item it could classify."""


class LLMCategoryClassifier(CategoryClassifier):
    """Category classifier backed by the configured LLM provider."""

    def __init__(self, client: Optional[AIClient] = None):
        self.client = client or get_ai_client()

    async def classify(
        self,
        items: List[ClassifierInput],
        memory: Dict[str, str],
        categories: List[str]
    ) -> List[ClassifierOutput]:
        memory_lines = "\n".join(f'"{m}" -> "{c}"' for m, c in memory.items()) or "(none)"
        transactions_json = json.dumps(
            [item.model_dump(mode="json") for item in items], ensure_ascii=False
        )

        response = await self.client.complete_json(
            system_prompt=CATEGORIZATION_SYSTEM.format(
                categories_json=json.dumps(categories, ensure_ascii=False),
                merchant_memory=memory_lines,
            ),
            user_prompt=CATEGORIZATION_USER.format(transactions_json=transactions_json),
            temperature=0.1,
            max_tokens=4000,
        )

        raw_items = response.get("results") if isinstance(response, dict) else response
        if not isinstance(raw_items, list):
            raise ClassifierError("Classifier response has no results list")

        try:
            return [ClassifierOutput(**item) for item in raw_items]
        except (TypeError, ValidationError) as e:
            raise ClassifierError(f"Malformed classifier item: {e}") from e


def get_default_classifier() -> Optional[CategoryClassifier]:
    """The LLM classifier, or None when categorization by AI is off or unconfigured."""
    if not settings.ai_auto_categorize:
        return None
    client = get_ai_client()
    if not client.is_configured:
        return None
    return LLMCategoryClassifier(client)


def fuzzy_match_merchant(merchant_raw: str, memory_merchant: str) -> bool:
    """
    Loose merchant comparison: "Shufersal Deal Ramat Gan" matches "Shufersal".

    Equal, either contains the other, or the first significant words agree.
    """
    raw = merchant_raw.lower().strip()
    mem = memory_merchant.lower().strip()
    if not raw or not mem:
        return False

    if raw == mem or mem in raw or raw in mem:
        return True

    raw_tokens = [t for t in raw.split() if len(t) > 2]
    mem_tokens = [t for t in mem.split() if len(t) > 2]
    return bool(raw_tokens and mem_tokens and raw_tokens[0] == mem_tokens[0])


def resolve_category(name: Optional[str], allowed: Sequence[str]) -> Optional[str]:
    """
    Map a classifier category onto the vocabulary.

    "Transportation / תחבורה" resolves to "Transportation". Anything not in
    the vocabulary after prefix matching is dropped.
    """
    if not name:
        return None
    if name in allowed:
        return name
    for candidate in sorted(allowed, key=len, reverse=True):
        if name.startswith(candidate):
            return candidate
    return None


def get_category_names(db: Session) -> List[str]:
    return [c.name for c in db.query(Category).order_by(Category.name).all()]


def load_merchant_memory(db: Session, household_id: str) -> Dict[str, str]:
    """Lowercased merchant -> category map for one household."""
    rows = db.query(MerchantMemory).filter(MerchantMemory.household_id == household_id).all()
    return {m.merchant_normalized.lower(): m.category for m in rows}


def find_merchant_memory(db: Session, household_id: str, merchant: str) -> Optional[MerchantMemory]:
    """Exact memory entry for a merchant, else the first fuzzy one."""
    rows = db.query(MerchantMemory).filter(MerchantMemory.household_id == household_id).all()

    lowered = merchant.lower().strip()
    for row in rows:
        if row.merchant_normalized.lower() == lowered:
            return row
    for row in rows:
        if fuzzy_match_merchant(merchant, row.merchant_normalized):
            return row
    return None


def save_merchant_memory(db: Session, household_id: str, merchant_normalized: str, category: str) -> MerchantMemory:
    """Remember a user's category choice for a merchant."""
    merchant_normalized = merchant_normalized.strip()
    memory = db.query(MerchantMemory).filter(
        MerchantMemory.household_id == household_id,
        MerchantMemory.merchant_normalized == merchant_normalized,
    ).first()

    if memory:
        memory.category = category
    else:
        memory = MerchantMemory(
            household_id=household_id,
            merchant_normalized=merchant_normalized,
            category=category,
        )
        db.add(memory)

    db.commit()
    db.refresh(memory)
    logger.info("Saved merchant memory %s -> %s", merchant_normalized, category)
    return memory


def match_memory(merchant: str, memory: Dict[str, str]) -> Optional[str]:
    for memory_merchant, category in memory.items():
        if fuzzy_match_merchant(merchant, memory_merchant):
            return category
    return None


def _pending_transactions(db: Session, household_id: str) -> List[Transaction]:
    return db.query(Transaction).filter(
        Transaction.household_id == household_id,
        Transaction.is_duplicate == False,
        or_(Transaction.category_source.is_(None), Transaction.category_source != CategorySource.user_manual),
        or_(
            Transaction.status == TransactionStatus.pending,
            (Transaction.status == TransactionStatus.provisional) & Transaction.category.is_(None),
        ),
    ).order_by(Transaction.date, Transaction.created_at).all()


def _apply_category(
    db: Session,
    tx: Transaction,
    category: Optional[str],
    confidence: int,
    source: CategorySource,
    merchant_normalized: Optional[str] = None
) -> bool:
    """Write one row; failures are logged and reported, siblings carry on."""
    try:
        if category:
            tx.category = category
            tx.category_source = source
        tx.category_confidence = confidence
        if merchant_normalized and not tx.merchant_normalized:
            tx.merchant_normalized = merchant_normalized
        # SMS-only rows wait for the statement before leaving provisional
        if tx.status != TransactionStatus.provisional:
            if category and confidence >= VERIFY_CONFIDENCE:
                tx.status = TransactionStatus.verified
            else:
                tx.status = TransactionStatus.flagged
        db.commit()
        return True
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Failed to update category for %s: %s", tx.id, e)
        return False


async def _classify_chunk(
    classifier: CategoryClassifier,
    chunk: List[ClassifierInput],
    memory: Dict[str, str],
    categories: List[str]
) -> List[ClassifierOutput]:
    return await asyncio.wait_for(
        classifier.classify(chunk, memory, categories),
        timeout=settings.classifier_timeout_seconds,
    )


async def categorize_pending_transactions(
    db: Session,
    household_id: str,
    classifier: Optional[CategoryClassifier] = None
) -> CategorizationResult:
    """
    Categorize a household's pending rows.

    Memory hits are verified at full confidence. The classifier's answers
    are verified at 70 or more with a known category, flagged otherwise.
    Without a classifier only the memory pass runs and the result carries
    an error.
    """
    transactions = _pending_transactions(db, household_id)
    if not transactions:
        return CategorizationResult(count=0, details="No transactions to categorize")

    memory = load_merchant_memory(db, household_id)
    categories = get_category_names(db)

    memory_count = 0
    needs_classifier: List[Transaction] = []
    for tx in transactions:
        category = match_memory(tx.merchant_normalized or tx.merchant_raw, memory)
        if category and (not categories or category in categories):
            if _apply_category(db, tx, category, MEMORY_CONFIDENCE, CategorySource.rule):
                memory_count += 1
        else:
            needs_classifier.append(tx)

    logger.info(
        "Merchant memory categorized %d of %d transactions for household %s",
        memory_count, len(transactions), household_id
    )

    if not needs_classifier:
        return CategorizationResult(
            count=memory_count,
            details=f"Categorized {memory_count} transactions from merchant memory",
        )

    classifier = classifier or get_default_classifier()
    if classifier is None:
        return CategorizationResult(
            count=memory_count,
            details=f"Categorized {memory_count} transactions from merchant memory",
            error="Category classifier unavailable (processed memory matches only)",
        )

    by_id = {tx.id: tx for tx in needs_classifier}
    inputs = [
        ClassifierInput(id=tx.id, merchant_raw=tx.merchant_raw, amount=tx.amount, currency=tx.currency)
        for tx in needs_classifier
    ]
    size = settings.classifier_chunk_size
    chunks = [inputs[i:i + size] for i in range(0, len(inputs), size)]

    results = await asyncio.gather(
        *(_classify_chunk(classifier, chunk, memory, categories) for chunk in chunks),
        return_exceptions=True,
    )

    classified_count = 0
    failed_chunks = 0
    for chunk, result in zip(chunks, results):
        if isinstance(result, BaseException):
            failed_chunks += 1
            logger.warning("Classifier chunk of %d failed: %r", len(chunk), result)
            continue

        chunk_ids = {item.id for item in chunk}
        for output in result:
            tx = by_id.get(output.id)
            if tx is None or output.id not in chunk_ids:
                continue
            category = resolve_category(output.category, categories)
            if _apply_category(
                db, tx, category, output.confidence, CategorySource.auto, output.merchant_normalized
            ):
                classified_count += 1

    details = (
        f"Categorized {memory_count + classified_count} transactions "
        f"({memory_count} from memory, {classified_count} by classifier)"
    )
    if failed_chunks:
        details += f"; {failed_chunks} of {len(chunks)} classifier batches failed"

    return CategorizationResult(count=memory_count + classified_count, details=details)


def categorize_by_keywords(db: Session, household_id: str) -> int:
    """
    Fill in uncategorized rows whose merchant contains a category keyword.

    First category with a hit wins. Status is left alone.

    Returns:
        Number of transactions updated
    """
    categories = [c for c in db.query(Category).order_by(Category.name).all() if c.keywords]
    transactions = db.query(Transaction).filter(
        Transaction.household_id == household_id,
        Transaction.is_duplicate == False,
        Transaction.category.is_(None),
    ).all()

    count = 0
    for tx in transactions:
        merchant = (tx.merchant_raw or "").lower()
        for category in categories:
            if any(keyword.lower() in merchant for keyword in category.keywords):
                tx.category = category.name
                tx.category_source = CategorySource.rule
                count += 1
                break

    db.commit()
    logger.info("Keyword rules categorized %d transactions for household %s", count, household_id)
    return count
