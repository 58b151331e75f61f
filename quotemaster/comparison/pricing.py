"""
Effective price resolution for a single quote line.

Precedence: approved -> negotiated -> initial -> absent.
A price of 0 is a defined price; only None counts as missing.
The VAT-inclusive total is always recomputed from the resolved unit price.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

HUNDRED = Decimal("100")

PRICE_APPROVED = "approved"
PRICE_NEGOTIATED = "negotiated"
PRICE_INITIAL = "initial"


def _dec(value) -> Optional[Decimal]:
    if value is None:
        return None
    return Decimal(str(value))


def total_with_vat(unit_price: Decimal, vat_percentage: Decimal) -> Decimal:
    return unit_price * (1 + vat_percentage / HUNDRED)


@dataclass(frozen=True)
class ResolvedPrice:
    unit_price: Optional[Decimal]
    vat_percentage: Decimal
    source: Optional[str]

    @property
    def has_price(self) -> bool:
        return self.unit_price is not None

    @property
    def total_with_vat(self) -> Optional[Decimal]:
        if self.unit_price is None:
            return None
        return total_with_vat(self.unit_price, self.vat_percentage)

    @property
    def vat_amount(self) -> Optional[Decimal]:
        if self.unit_price is None:
            return None
        return self.unit_price * self.vat_percentage / HUNDRED

    def to_dict(self) -> dict:
        total = self.total_with_vat
        return {
            "unit_price": None if self.unit_price is None else str(self.unit_price),
            "vat_percentage": str(self.vat_percentage),
            "total_with_vat": None if total is None else str(total),
            "source": self.source,
        }


def resolve_price(initial=None, negotiated=None, approved=None, vat_percentage=None) -> ResolvedPrice:
    vat = _dec(vat_percentage) or Decimal("0")
    for value, source in (
        (approved, PRICE_APPROVED),
        (negotiated, PRICE_NEGOTIATED),
        (initial, PRICE_INITIAL),
    ):
        if value is not None:
            return ResolvedPrice(_dec(value), vat, source)
    return ResolvedPrice(None, vat, None)
