from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional

from core.exceptions import InvalidParticipants, ValidationError

DEFAULT_TAX_RATE = Decimal("0.12")
CHILD_PRICE_FACTOR = Decimal("0.7")
SENIOR_PRICE_FACTOR = Decimal("0.8")
CENT = Decimal("0.01")


def to_money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class Participants:
    adults: int = 0
    children: int = 0
    seniors: int = 0

    @property
    def total(self) -> int:
        return self.adults + self.children + self.seniors


@dataclass(frozen=True)
class PriceTable:
    """Per-age-tier prices for one activity; child/senior fall back to a share of the adult price."""

    adult: Decimal
    currency: str = "USD"
    child: Optional[Decimal] = None
    senior: Optional[Decimal] = None

    @property
    def child_price(self) -> Decimal:
        if self.child is not None:
            return Decimal(self.child)
        return Decimal(self.adult) * CHILD_PRICE_FACTOR

    @property
    def senior_price(self) -> Decimal:
        if self.senior is not None:
            return Decimal(self.senior)
        return Decimal(self.adult) * SENIOR_PRICE_FACTOR


@dataclass(frozen=True)
class LinePrice:
    subtotal: Decimal
    taxes: Decimal
    total: Decimal
    currency: str


@dataclass(frozen=True)
class BookingPrice:
    subtotal: Decimal
    taxes: Decimal
    total: Decimal
    currency: str


def price_line(
    table: PriceTable,
    participants: Participants,
    *,
    tax_rate: Decimal = DEFAULT_TAX_RATE,
) -> LinePrice:
    """
    Price a single activity line.

    subtotal = adults*adult + children*child + seniors*senior, tax is
    ``subtotal * tax_rate`` and total is ``subtotal + tax``. Each amount is
    rounded half-up to cents so identical inputs always produce identical output.
    """
    counts = (participants.adults, participants.children, participants.seniors)
    if any(count < 0 for count in counts):
        raise InvalidParticipants("Participant counts cannot be negative.")
    if participants.total == 0:
        raise InvalidParticipants()

    raw_subtotal = (
        participants.adults * Decimal(table.adult)
        + participants.children * table.child_price
        + participants.seniors * table.senior_price
    )
    subtotal = to_money(raw_subtotal)
    taxes = to_money(subtotal * Decimal(tax_rate))
    return LinePrice(
        subtotal=subtotal,
        taxes=taxes,
        total=subtotal + taxes,
        currency=table.currency,
    )


def price_booking(lines: Iterable[LinePrice]) -> BookingPrice:
    """Sum line prices into the booking-level snapshot."""
    lines = list(lines)
    if not lines:
        raise ValidationError("A booking needs at least one activity.")

    currencies = {line.currency.upper() for line in lines}
    if len(currencies) > 1:
        raise ValidationError("All activities in a booking must be priced in the same currency.")

    subtotal = sum((line.subtotal for line in lines), Decimal("0.00"))
    taxes = sum((line.taxes for line in lines), Decimal("0.00"))
    return BookingPrice(
        subtotal=subtotal,
        taxes=taxes,
        total=sum((line.total for line in lines), Decimal("0.00")),
        currency=lines[0].currency.upper(),
    )


# Currencies the payment provider charges in whole units.
ZERO_DECIMAL_CURRENCIES = frozenset(
    {
        "BIF", "CLP", "DJF", "GNF", "JPY", "KMF", "KRW", "MGA",
        "PYG", "RWF", "UGX", "VND", "VUV", "XAF", "XOF", "XPF",
    }
)


def currency_exponent(currency: str) -> int:
    return 0 if (currency or "").upper() in ZERO_DECIMAL_CURRENCIES else 2


def to_minor_units(amount: Decimal, currency: str) -> int:
    """Amount in the provider's smallest unit for ``currency`` (cents, or whole yen)."""
    scale = Decimal(10) ** currency_exponent(currency)
    return int((Decimal(amount) * scale).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(amount: int, currency: str) -> Decimal:
    scale = Decimal(10) ** currency_exponent(currency)
    return to_money(Decimal(amount) / scale)
