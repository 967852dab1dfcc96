"""
Commerce Use Case.

Order lifecycle, return eligibility and exchange handling for a web store.

Components:
- OrderStateMachine: Drives orders from cart to complete, cancel and resume
- DefaultEligibilityValidator: Decides whether a return item may be returned
- SameOptionValue: Picks the variants a returned item may be exchanged for
- Exchange: Ships replacement inventory for accepted return items
- RecordStore: In-memory repositories for orders, catalog and returns

Usage:
    from config import settings
    from use_cases.commerce import CommerceConfiguration, get_record_store

    configuration = CommerceConfiguration.from_settings(settings)
    machine = configuration.build_state_machine()
    order = get_record_store().find_order("R100000002")
    machine.next(order)
"""

from use_cases.commerce.domain import (
    AcceptanceStatus,
    DefaultEligibilityValidator,
    Exchange,
    Order,
    OrderStateMachine,
    OrderUpdater,
    ReturnItemAcceptance,
    SameOptionValue,
    SameProduct,
    TieredFlatRate,
)
from use_cases.commerce.configuration import CommerceConfiguration
from use_cases.commerce.store import InMemoryRepository, RecordStore, get_record_store
from use_cases.commerce.sample_data import seed_store

__all__ = [
    # Domain
    "AcceptanceStatus",
    "DefaultEligibilityValidator",
    "Exchange",
    "Order",
    "OrderStateMachine",
    "OrderUpdater",
    "ReturnItemAcceptance",
    "SameOptionValue",
    "SameProduct",
    "TieredFlatRate",
    # Configuration
    "CommerceConfiguration",
    # Store
    "InMemoryRepository",
    "RecordStore",
    "get_record_store",
    # Sample data
    "seed_store",
]
