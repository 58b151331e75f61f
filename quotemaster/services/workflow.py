"""
quotemaster/services/workflow.py

Quotation lifecycle.

    pending ──> negotiation ──> approved
       │             │             │
       └─────────────┴─────────────┴──> cancelled

- approved is terminal for price fields; its only exit is cancelled.
- cancelled is terminal.
- Self transitions are rejected.

Entering `approved` writes one PriceHistory row per item with an approved
price, in the same transaction as the status change. Every status write goes
through the Quotation version counter, so two concurrent approvals cannot both
commit.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Mapping, Optional

from sqlalchemy.orm.exc import StaleDataError

from ..audit import log_action, serialize_model
from ..errors import (
    ConcurrentModificationError,
    ImmutablePriceError,
    InvalidTransitionError,
    QuoteMasterError,
    ValidationError,
)
from ..extensions import db
from ..models import (
    PRICE_TYPE_APPROVED,
    QUOTATION_STATUSES,
    STATUS_APPROVED,
    STATUS_CANCELLED,
    STATUS_NEGOTIATION,
    STATUS_PENDING,
    PriceHistory,
    Quotation,
    QuoteItem,
    money,
)
from ..security import Actor, require_manage
from ..utils import parse_decimal
from .queries import get_quotation_or_404, get_quote_item_or_404

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    STATUS_PENDING: frozenset({STATUS_NEGOTIATION, STATUS_APPROVED, STATUS_CANCELLED}),
    STATUS_NEGOTIATION: frozenset({STATUS_APPROVED, STATUS_CANCELLED}),
    STATUS_APPROVED: frozenset({STATUS_CANCELLED}),
    STATUS_CANCELLED: frozenset(),
}

# Price columns may only change while the quotation is still open
PRICE_EDITABLE_STATUSES = frozenset({STATUS_PENDING, STATUS_NEGOTIATION})


def can_transition(current: str, target: str) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def _check_version(quotation: Quotation, expected_version: Optional[int]) -> None:
    if expected_version is not None and int(expected_version) != quotation.version:
        raise ConcurrentModificationError(
            f"Quotation {quotation.code} was modified by someone else",
            quotation_id=quotation.id,
            expected_version=int(expected_version),
            current_version=quotation.version,
        )


def _parse_price(value, field_name: str) -> Decimal:
    price = parse_decimal(value)
    if price is None:
        raise ValidationError(f"Invalid {field_name}", field=field_name)
    if price < 0:
        raise ValidationError(f"{field_name} must not be negative", field=field_name)
    return money(price)


def _commit(quotation: Quotation) -> None:
    try:
        db.session.commit()
    except StaleDataError:
        db.session.rollback()
        raise ConcurrentModificationError(
            "Quotation was modified by someone else",
            quotation_id=quotation.id,
        )


def _normalize_overrides(quotation: Quotation, approved_prices: Optional[Mapping]) -> Dict[int, Decimal]:
    if not approved_prices:
        return {}
    item_ids = {item.id for item in quotation.items}
    overrides: Dict[int, Decimal] = {}
    for raw_id, raw_price in approved_prices.items():
        try:
            item_id = int(raw_id)
        except (TypeError, ValueError):
            raise ValidationError(f"Invalid quote item id '{raw_id}'", field="approved_prices")
        if item_id not in item_ids:
            raise ValidationError(
                f"Quote item {item_id} does not belong to quotation {quotation.code}",
                field="approved_prices",
            )
        overrides[item_id] = _parse_price(raw_price, "approved_price")
    return overrides


def _apply_approval(quotation: Quotation, actor: Actor, overrides: Dict[int, Decimal], fill_missing: bool) -> int:
    """Finalize item prices and append history rows. Returns the number of rows written."""
    now = datetime.utcnow()
    written = 0
    for item in quotation.items:
        if item.id in overrides:
            item.approved_price = overrides[item.id]
        elif item.approved_price is None and fill_missing:
            fallback = item.negotiated_price if item.negotiated_price is not None else item.initial_price
            if fallback is not None:
                item.approved_price = fallback

        if item.approved_price is None:
            continue

        item.approved_at = now
        item.approved_by = actor.user_id
        db.session.add(
            PriceHistory(
                product_id=item.product_id,
                supplier_id=quotation.supplier_id,
                quotation_id=quotation.id,
                period=quotation.period,
                region=quotation.region,
                price=item.approved_price,
                price_type=PRICE_TYPE_APPROVED,
                recorded_at=now,
            )
        )
        written += 1
    return written


def transition_quotation(
    actor: Actor,
    quotation_id: int,
    target: str,
    *,
    approved_prices: Optional[Mapping] = None,
    expected_version: Optional[int] = None,
    fill_missing: bool = False,
) -> Quotation:
    """
    Move a quotation to `target`.

    approved_prices: optional {item_id: price} overrides applied when entering approved.
    fill_missing: when approving, finalize items without an approved price to
                  negotiated-or-initial first.
    """
    require_manage(actor)

    if target not in QUOTATION_STATUSES:
        raise ValidationError(f"Unknown quotation status '{target}'", field="status")

    quotation = get_quotation_or_404(quotation_id)
    current = quotation.status

    if not can_transition(current, target):
        raise InvalidTransitionError(current, target)
    _check_version(quotation, expected_version)

    overrides = _normalize_overrides(quotation, approved_prices) if target == STATUS_APPROVED else {}

    before = serialize_model(quotation)
    try:
        written = 0
        if target == STATUS_APPROVED:
            written = _apply_approval(quotation, actor, overrides, fill_missing)

        quotation.status = target
        quotation.update_date = datetime.utcnow()
        db.session.flush()

        log_action(actor, quotation, target.upper(), before=before, after=serialize_model(quotation))
        _commit(quotation)
    except StaleDataError:
        db.session.rollback()
        raise ConcurrentModificationError(
            f"Quotation {quotation_id} was modified by someone else",
            quotation_id=quotation_id,
        )
    except Exception:
        db.session.rollback()
        raise

    logger.info(
        "Quotation %s: %s -> %s by %s (%d price history rows)",
        quotation.code, current, target, actor.username, written,
    )
    return quotation


def negotiate_quotation(actor: Actor, quotation_id: int, *, expected_version: Optional[int] = None) -> Quotation:
    return transition_quotation(actor, quotation_id, STATUS_NEGOTIATION, expected_version=expected_version)


def approve_quotation(
    actor: Actor,
    quotation_id: int,
    *,
    approved_prices: Optional[Mapping] = None,
    expected_version: Optional[int] = None,
    fill_missing: bool = False,
) -> Quotation:
    return transition_quotation(
        actor,
        quotation_id,
        STATUS_APPROVED,
        approved_prices=approved_prices,
        expected_version=expected_version,
        fill_missing=fill_missing,
    )


def cancel_quotation(actor: Actor, quotation_id: int, *, expected_version: Optional[int] = None) -> Quotation:
    return transition_quotation(actor, quotation_id, STATUS_CANCELLED, expected_version=expected_version)


# ---------------------------------------------------------------------
# Price edits (gated by status)
# ---------------------------------------------------------------------
def _editable_item(item_id: int) -> QuoteItem:
    item = get_quote_item_or_404(item_id)
    if item.quotation.status not in PRICE_EDITABLE_STATUSES:
        raise ImmutablePriceError(
            f"Prices of quotation {item.quotation.code} are locked (status '{item.quotation.status}')",
            item_id=item.id,
            status=item.quotation.status,
        )
    return item


def set_negotiated_price(
    actor: Actor,
    item_id: int,
    price,
    *,
    expected_version: Optional[int] = None,
) -> QuoteItem:
    """Record a negotiated price; counts a negotiation round."""
    require_manage(actor)
    value = _parse_price(price, "negotiated_price")

    item = _editable_item(item_id)
    quotation = item.quotation
    _check_version(quotation, expected_version)

    before = serialize_model(item)
    try:
        item.negotiated_price = value
        item.negotiation_rounds = (item.negotiation_rounds or 0) + 1
        item.last_negotiated_at = datetime.utcnow()
        quotation.update_date = item.last_negotiated_at
        db.session.flush()

        log_action(actor, item, "NEGOTIATE", before=before, after=serialize_model(item))
        _commit(quotation)
    except Exception:
        db.session.rollback()
        raise

    logger.info("Quote item %s negotiated to %s (round %s)", item.id, value, item.negotiation_rounds)
    return item


def stage_approved_price(actor: Actor, item_id: int, price) -> QuoteItem:
    """
    Pre-set the approved price of an open quotation's item.

    History is only written when the quotation itself is approved.
    """
    require_manage(actor)
    value = None if price is None or price == "" else _parse_price(price, "approved_price")

    item = _editable_item(item_id)
    before = serialize_model(item)
    try:
        item.approved_price = value
        db.session.flush()
        log_action(actor, item, "UPDATE", before=before, after=serialize_model(item))
        _commit(item.quotation)
    except Exception:
        db.session.rollback()
        raise
    return item


# ---------------------------------------------------------------------
# Batch operations (one transaction per quotation)
# ---------------------------------------------------------------------
@dataclass
class BatchOutcome:
    succeeded: List[int] = field(default_factory=list)
    skipped: List[int] = field(default_factory=list)
    errors: Dict[int, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "succeeded": self.succeeded,
            "skipped": self.skipped,
            "errors": {str(k): v for k, v in self.errors.items()},
        }


def _run_batch(actor: Actor, quotation_ids: Iterable[int], target: str, eligible: frozenset, **kwargs) -> BatchOutcome:
    require_manage(actor)
    outcome = BatchOutcome()
    for quotation_id in dict.fromkeys(int(qid) for qid in quotation_ids):
        quotation = db.session.get(Quotation, quotation_id)
        if quotation is None:
            outcome.errors[quotation_id] = f"Quotation {quotation_id} not found"
            continue
        if quotation.status not in eligible:
            outcome.skipped.append(quotation_id)
            continue
        try:
            transition_quotation(actor, quotation_id, target, **kwargs)
        except QuoteMasterError as exc:
            outcome.errors[quotation_id] = exc.message
            continue
        outcome.succeeded.append(quotation_id)

    logger.info(
        "Batch %s: %d succeeded, %d skipped, %d failed",
        target, len(outcome.succeeded), len(outcome.skipped), len(outcome.errors),
    )
    return outcome


def batch_negotiate(actor: Actor, quotation_ids: Iterable[int]) -> BatchOutcome:
    """Move every pending quotation in the list to negotiation; others are skipped."""
    return _run_batch(actor, quotation_ids, STATUS_NEGOTIATION, frozenset({STATUS_PENDING}))


def batch_approve(actor: Actor, quotation_ids: Iterable[int], *, fill_missing: bool = True) -> BatchOutcome:
    """Approve every pending/negotiation quotation in the list; others are skipped."""
    return _run_batch(
        actor,
        quotation_ids,
        STATUS_APPROVED,
        PRICE_EDITABLE_STATUSES,
        fill_missing=fill_missing,
    )
