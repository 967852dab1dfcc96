"""
Exchange Variant Eligibility.

Strategies that decide which variants a customer may receive in exchange
for a returned variant. Every strategy implements
`eligible_variants(variant) -> list of variants`; the returned variants
never include the source variant itself.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence

from .models import Variant


class ExchangeVariantEligibility(ABC):
    """Abstract base class for exchange variant strategies."""

    @abstractmethod
    def eligible_variants(self, variant: Variant) -> List[Variant]:
        """
        Return the variants that `variant` may be exchanged for.

        Args:
            variant: The variant being returned

        Returns:
            Eligible sibling variants, in product order
        """
        pass


class SameProduct(ExchangeVariantEligibility):
    """Any other variant of the same product with the same master flag."""

    def eligible_variants(self, variant: Variant) -> List[Variant]:
        return [
            candidate
            for candidate in variant.product.variants
            if candidate is not variant and candidate.is_master == variant.is_master
        ]


class SameOptionValue(ExchangeVariantEligibility):
    """
    Sibling variants that match the source on restricted option types.

    With restrictions ``["color", "waist"]`` a blue/32/30 pair of jeans may
    be exchanged for blue/32/31 but not for red/32/30 or blue/34/30.
    Option types outside the restriction list may differ freely. With no
    restrictions every sibling is eligible.
    """

    def __init__(self, option_type_restrictions: Optional[Sequence[str]] = None):
        self.option_type_restrictions = list(option_type_restrictions or [])
        self._same_product = SameProduct()

    def eligible_variants(self, variant: Variant) -> List[Variant]:
        siblings = self._same_product.eligible_variants(variant)

        relevant = {}
        for option_type_name in self.option_type_restrictions:
            option_value = variant.option_value_for(option_type_name)
            if option_value is not None:
                relevant[option_type_name] = option_value.name

        if not relevant:
            return siblings

        return [
            candidate for candidate in siblings
            if all(
                self._value_name(candidate, option_type_name) == value_name
                for option_type_name, value_name in relevant.items()
            )
        ]

    @staticmethod
    def _value_name(variant: Variant, option_type_name: str) -> Optional[str]:
        option_value = variant.option_value_for(option_type_name)
        return option_value.name if option_value is not None else None


# Strategies selectable by name from configuration
EXCHANGE_VARIANT_STRATEGIES: Dict[str, type] = {
    "same_product": SameProduct,
    "same_option_value": SameOptionValue,
}
