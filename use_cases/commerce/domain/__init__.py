"""
Commerce Domain Layer.

Contains pure business logic for orders, returns and exchanges.
No database access or I/O - just entities, business rules and services.
"""

from .calculators import Calculator, FlatRate, TieredFlatRate, TieredPercent
from .models import AcceptanceStatus, Money, Order, ReturnItem, Variant
from .policies import (
    DefaultEligibilityValidator,
    EligibilityValidator,
    ProductPropertyValidator,
    RMARequired,
    TimeSincePurchase,
)
from .services import Exchange, OrderUpdater, ReturnItemAcceptance
from .state_machine import OrderStateMachine
from .variant_eligibility import ExchangeVariantEligibility, SameOptionValue, SameProduct

__all__ = [
    "Calculator",
    "FlatRate",
    "TieredFlatRate",
    "TieredPercent",
    "AcceptanceStatus",
    "Money",
    "Order",
    "ReturnItem",
    "Variant",
    "DefaultEligibilityValidator",
    "EligibilityValidator",
    "ProductPropertyValidator",
    "RMARequired",
    "TimeSincePurchase",
    "Exchange",
    "OrderUpdater",
    "ReturnItemAcceptance",
    "OrderStateMachine",
    "ExchangeVariantEligibility",
    "SameOptionValue",
    "SameProduct",
]
