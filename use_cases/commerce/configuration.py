"""
Commerce Configuration.

Builds the runtime collaborators (eligibility chain, exchange variant
strategy, calculators, state machine) from Settings. Components receive a
CommerceConfiguration explicitly; nothing here mutates class-level state,
so tests can build their own configuration per case.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from functools import partial
from typing import Any, List, Optional, Sequence

from config import Settings

from .domain.calculators import Calculator, FlatRate, TieredFlatRate
from .domain.models import ReturnItem
from .domain.policies import (
    DEFAULT_ELIGIBILITY_VALIDATORS,
    DEFAULT_RETURN_WINDOW_DAYS,
    ELIGIBILITY_VALIDATORS,
    DefaultEligibilityValidator,
    TimeSincePurchase,
    ValidatorFactory,
)
from .domain.services import ReturnItemAcceptance
from .domain.state_machine import (
    OrderNotifier,
    OrderStateMachine,
    PaymentGateway,
    TaxRateAdjuster,
)
from .domain.variant_eligibility import (
    EXCHANGE_VARIANT_STRATEGIES,
    ExchangeVariantEligibility,
    SameOptionValue,
)

logger = logging.getLogger(__name__)


def resolve_eligibility_validators(
    names: Sequence[str],
    return_window_days: int = DEFAULT_RETURN_WINDOW_DAYS,
) -> List[ValidatorFactory]:
    """
    Turn configured validator names into validator factories.

    Raises:
        ValueError: If a name is not a registered validator
    """
    factories: List[ValidatorFactory] = []
    for name in names:
        validator_class = ELIGIBILITY_VALIDATORS.get(name)
        if validator_class is None:
            raise ValueError(
                f"Unknown eligibility validator '{name}'. "
                f"Must be one of: {', '.join(ELIGIBILITY_VALIDATORS)}"
            )
        if validator_class is TimeSincePurchase:
            factories.append(partial(TimeSincePurchase, return_window_days=return_window_days))
        else:
            factories.append(validator_class)
    return factories


def resolve_exchange_variant_eligibility(
    name: str,
    option_type_restrictions: Sequence[str] = (),
) -> ExchangeVariantEligibility:
    strategy_class = EXCHANGE_VARIANT_STRATEGIES.get(name)
    if strategy_class is None:
        raise ValueError(
            f"Unknown exchange variant eligibility '{name}'. "
            f"Must be one of: {', '.join(EXCHANGE_VARIANT_STRATEGIES)}"
        )
    if strategy_class is SameOptionValue:
        return SameOptionValue(option_type_restrictions)
    return strategy_class()


def _parse_tier_threshold(key: Any) -> Any:
    """Turn a numeric string key from the environment into a Decimal.

    Keys that do not parse are returned as given so calculator validation
    reports them.
    """
    if not isinstance(key, str):
        return key
    try:
        return Decimal(key.strip())
    except InvalidOperation:
        return key


def resolve_shipping_calculator(settings: Settings) -> Calculator:
    if settings.shipping_calculator == "flat_rate":
        return FlatRate(settings.shipping_flat_rate)
    if settings.shipping_calculator == "tiered_flat_rate":
        tiers = {_parse_tier_threshold(key): rate for key, rate in settings.shipping_tiers.items()}
        calculator = TieredFlatRate(settings.shipping_flat_rate, tiers)
        if not calculator.valid():
            messages = "; ".join(error.message for error in calculator.validate())
            raise ValueError(f"Invalid SHIPPING_TIERS: {messages}")
        return calculator
    raise ValueError(f"Unknown shipping calculator '{settings.shipping_calculator}'")


@dataclass
class CommerceConfiguration:
    """Process-wide commerce policy, passed explicitly to the components."""
    eligibility_validators: Sequence[ValidatorFactory] = DEFAULT_ELIGIBILITY_VALIDATORS
    exchange_variant_eligibility: ExchangeVariantEligibility = field(default_factory=SameOptionValue)
    shipping_calculator: Calculator = field(default_factory=FlatRate)
    tax_rates: List[Decimal] = field(default_factory=list)
    free_shipping_threshold: Optional[Decimal] = None
    currency: str = "USD"

    @classmethod
    def from_settings(cls, settings: Settings) -> "CommerceConfiguration":
        configuration = cls(
            eligibility_validators=resolve_eligibility_validators(
                settings.eligibility_validators,
                settings.return_eligibility_number_of_days,
            ),
            exchange_variant_eligibility=resolve_exchange_variant_eligibility(
                settings.exchange_variant_eligibility,
                settings.option_type_restrictions,
            ),
            shipping_calculator=resolve_shipping_calculator(settings),
            tax_rates=list(settings.tax_rates),
            free_shipping_threshold=settings.free_shipping_threshold,
            currency=settings.currency,
        )
        logger.info(
            f"Commerce configuration: validators={settings.eligibility_validators}, "
            f"exchange={settings.exchange_variant_eligibility} "
            f"restrictions={settings.option_type_restrictions}"
        )
        return configuration

    def eligibility_validator(self, return_item: ReturnItem) -> DefaultEligibilityValidator:
        return DefaultEligibilityValidator(return_item, self.eligibility_validators)

    def return_item_acceptance(self) -> ReturnItemAcceptance:
        return ReturnItemAcceptance(self.eligibility_validators)

    def build_state_machine(
        self,
        payment_gateway: Optional[PaymentGateway] = None,
        notifier: Optional[OrderNotifier] = None,
    ) -> OrderStateMachine:
        return OrderStateMachine(
            tax_adjuster=TaxRateAdjuster(self.tax_rates),
            payment_gateway=payment_gateway,
            notifier=notifier,
            shipping_calculator=self.shipping_calculator,
            free_shipping_threshold=self.free_shipping_threshold,
        )
