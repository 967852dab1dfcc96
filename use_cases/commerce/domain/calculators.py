"""
Pricing Calculators.

Reusable strategy objects that compute a charge from a subject exposing an
`amount` (a line item, a shipment, an order). Used for shipping costs and
promotion/tax style adjustments.
"""

from abc import ABC, abstractmethod
from collections.abc import Mapping
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, List, Optional, Tuple

from core.domain import ValidationError

from .models import CENTS, to_decimal


class Calculator(ABC):
    """Abstract base class for calculators."""

    @abstractmethod
    def compute(self, subject: Any) -> Decimal:
        """
        Compute the charge for a subject.

        Args:
            subject: Any object with an `amount` attribute

        Returns:
            The computed charge
        """
        pass

    def validate(self) -> List[ValidationError]:
        """Validate the calculator's preferences."""
        return []

    def valid(self) -> bool:
        return len(self.validate()) == 0


class FlatRate(Calculator):
    """The same charge for every subject."""

    def __init__(self, amount: Any = 0):
        self.amount = to_decimal(amount)

    def compute(self, subject: Any) -> Decimal:
        return self.amount


def _coerce_threshold(key: Any) -> Optional[Decimal]:
    """Return the key as a positive Decimal, or None when it is not a positive number."""
    # Strings are rejected, even numeric ones
    if isinstance(key, bool) or not isinstance(key, (int, float, Decimal)):
        return None
    threshold = to_decimal(key)
    if not threshold.is_finite() or threshold <= 0:
        return None
    return threshold


class TieredCalculator(Calculator):
    """
    Shared band selection for tiered calculators.

    `tiers` maps a threshold to a rate. Thresholds split amounts into bands:
    with ``{100: 15, 200: 20}`` the bands are [0, 100) -> base,
    [100, 200) -> 15 and [200, inf) -> 20.
    """

    def __init__(self, base: Any = 0, tiers: Any = None):
        self.base = to_decimal(base)
        self.tiers = {} if tiers is None else tiers

    def validate(self) -> List[ValidationError]:
        if not isinstance(self.tiers, Mapping):
            return [ValidationError(
                field="tiers",
                message="must be a mapping of threshold to rate",
                code="not_a_mapping",
            )]

        errors = []
        for key in self.tiers:
            if _coerce_threshold(key) is None:
                errors.append(ValidationError(
                    field="tiers",
                    message=f"threshold {key!r} must be a positive number",
                    code="invalid_threshold",
                ))
        return errors

    def _bands(self) -> List[Tuple[Decimal, Decimal]]:
        if not self.valid():
            raise ValueError(f"Invalid tiers for {type(self).__name__}: {self.tiers!r}")
        return sorted(
            (_coerce_threshold(key), to_decimal(rate)) for key, rate in self.tiers.items()
        )

    def rate_for(self, amount: Any) -> Decimal:
        """Rate of the highest threshold the amount has reached, else the base."""
        amount = to_decimal(amount)
        rate = self.base
        for threshold, band_rate in self._bands():
            if amount < threshold:
                break
            rate = band_rate
        return rate


class TieredFlatRate(TieredCalculator):
    """A flat charge chosen by the band the subject's amount falls in."""

    def __init__(self, base_amount: Any = 0, tiers: Any = None):
        super().__init__(base_amount, tiers)

    @property
    def base_amount(self) -> Decimal:
        return self.base

    def compute(self, subject: Any) -> Decimal:
        return self.rate_for(subject.amount)


class TieredPercent(TieredCalculator):
    """A percentage of the subject's amount, the percentage chosen by band."""

    def __init__(self, base_percent: Any = 0, tiers: Any = None):
        super().__init__(base_percent, tiers)

    @property
    def base_percent(self) -> Decimal:
        return self.base

    def compute(self, subject: Any) -> Decimal:
        amount = to_decimal(subject.amount)
        percent = self.rate_for(amount)
        return (amount * percent / 100).quantize(CENTS, rounding=ROUND_HALF_UP)
