"""
Use Cases Package.

This package contains modular use case implementations for the Commerce Core.
Each use case is a self-contained module with its own:
- Domain entities, policies and services
- Record store
- Configuration wiring
- Sample data

Available use cases:
- commerce: Order lifecycle, returns eligibility and exchanges

Architecture:
Each use case follows the layered architecture pattern defined in core/:
- domain/: Pure business logic (models, policies, services, state machine)
- store.py: Repository pattern for data access
- configuration.py: Settings turned into runtime collaborators
"""

# Re-export commonly used items from the commerce use case
from use_cases.commerce import (
    CommerceConfiguration,
    Exchange,
    OrderStateMachine,
    RecordStore,
    get_record_store,
)

__all__ = [
    # Commerce
    "CommerceConfiguration",
    "Exchange",
    "OrderStateMachine",
    "RecordStore",
    "get_record_store",
]
