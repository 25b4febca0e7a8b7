"""
Commission service: derives commission amounts from a completed sale price.

The split formula is a pluggable policy so it can change without touching the
lifecycle engine. Any callable `Decimal -> CommissionSplit` is a policy.

Contract:
- compute(final_price) -> (agreed_commission_amount, spotter_commission_amount)
- Deterministic and idempotent: the same final_price always yields the same split.
- Amounts are rounded to cents, ROUND_HALF_UP.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Callable, NamedTuple

from domain.errors import ValidationError
from domain.lifecycle import parse_final_price

CENTS = Decimal("0.01")


class CommissionSplit(NamedTuple):
    """Unpacks as (agreed_commission_amount, spotter_commission_amount)."""

    agreed_commission_amount: Decimal
    spotter_commission_amount: Decimal


CommissionPolicy = Callable[[Decimal], CommissionSplit]


def _to_cents(value: Decimal) -> Decimal:
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


@dataclass(frozen=True, slots=True)
class PercentageCommissionPolicy:
    """
    Percentage-of-sale split.

    agreed  = final_price * agency_rate
    spotter = agreed * spotter_share

    Example (defaults):
        PercentageCommissionPolicy()(Decimal("500000"))
        # CommissionSplit(Decimal('25000.00'), Decimal('2500.00'))
    """

    agency_rate: Decimal = Decimal("0.05")
    spotter_share: Decimal = Decimal("0.10")

    def __post_init__(self) -> None:
        for name in ("agency_rate", "spotter_share"):
            value = getattr(self, name)
            if not isinstance(value, Decimal) or not value.is_finite() or not (0 <= value <= 1):
                raise ValueError(f"{name} must be a Decimal between 0 and 1")

    def __call__(self, final_price: Decimal) -> CommissionSplit:
        agreed = _to_cents(final_price * self.agency_rate)
        spotter = _to_cents(agreed * self.spotter_share)
        return CommissionSplit(agreed, spotter)


@dataclass(frozen=True, slots=True)
class FlatSpotterFeePolicy:
    """Percentage agreed commission with a fixed spotter fee (capped at the agreed amount)."""

    agency_rate: Decimal
    spotter_fee: Decimal

    def __call__(self, final_price: Decimal) -> CommissionSplit:
        agreed = _to_cents(final_price * self.agency_rate)
        return CommissionSplit(agreed, min(_to_cents(self.spotter_fee), agreed))


class CommissionCalculator:
    """Validates the sale price and applies the configured policy."""

    def __init__(self, policy: CommissionPolicy | None = None) -> None:
        self._policy: CommissionPolicy = policy or PercentageCommissionPolicy()

    @property
    def policy(self) -> CommissionPolicy:
        return self._policy

    def compute(self, final_price: object) -> CommissionSplit:
        """
        Compute the commission split for a sale price.

        Raises:
            ValidationError: if final_price is not a positive, finite number.
        """

        price = parse_final_price(final_price)
        try:
            agreed, spotter = self._policy(price)
        except InvalidOperation as e:
            raise ValidationError.for_field("final_price", "Commission cannot be computed for this price.") from e
        if spotter > agreed:
            raise ValueError("spotter commission cannot exceed the agreed commission")
        return CommissionSplit(agreed, spotter)

    __call__ = compute


__all__ = [
    "CommissionCalculator",
    "CommissionPolicy",
    "CommissionSplit",
    "FlatSpotterFeePolicy",
    "PercentageCommissionPolicy",
]
