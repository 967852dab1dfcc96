"""
Core Framework for the Commerce Core.

This module provides the base classes and interfaces shared by the use
cases. The layered architecture keeps:

1. Domain Layer - Pure business rules, no I/O
2. Data Layer - Repository pattern and units of work for data access
3. Exceptions - The error taxonomy mapped at the HTTP boundary

Each use case follows this pattern for consistency and reusability.
"""

from .domain import DomainService, PolicyDecision, PolicyEngine, PolicyResult, ValidationError, Validator
from .data import QueryOptions, QueryResult, Repository, SnapshotUnitOfWork, UnitOfWork
from .exceptions import (
    CommerceError,
    ExchangeAlreadyPerformedError,
    ExchangeError,
    InvalidTransitionError,
    MissingExchangeVariantError,
    RecordNotFoundError,
    UnableToCreateShipmentsError,
)

__all__ = [
    # Domain
    "DomainService",
    "PolicyDecision",
    "PolicyEngine",
    "PolicyResult",
    "ValidationError",
    "Validator",
    # Data
    "QueryOptions",
    "QueryResult",
    "Repository",
    "SnapshotUnitOfWork",
    "UnitOfWork",
    # Exceptions
    "CommerceError",
    "ExchangeAlreadyPerformedError",
    "ExchangeError",
    "InvalidTransitionError",
    "MissingExchangeVariantError",
    "RecordNotFoundError",
    "UnableToCreateShipmentsError",
]
