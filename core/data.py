"""
Data Layer Base Classes.

The data layer provides the Repository pattern for data access.
This abstracts away the specific record store and provides a clean
interface for the domain layer.

Key principles:
- Repositories handle CRUD operations only
- No business logic in repositories
- Return domain objects, not raw dicts
- Support for different backends via dependency injection
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Generic, List, Optional, TypeVar

logger = logging.getLogger(__name__)

# Type variable for entity types
T = TypeVar("T")


@dataclass
class QueryOptions:
    """Options for repository queries."""
    limit: int = 100
    offset: int = 0
    order_by: Optional[str] = None
    order_desc: bool = False
    filters: Dict[str, Any] = field(default_factory=dict)


@dataclass
class QueryResult(Generic[T]):
    """Result of a repository query with pagination info."""
    data: List[T]
    total_count: int
    has_more: bool
    next_offset: Optional[int] = None

    def first(self) -> Optional[T]:
        return self.data[0] if self.data else None


class Repository(ABC, Generic[T]):
    """
    Abstract base class for repositories.

    A Repository provides data access methods for a specific entity type.
    It abstracts the underlying record store and provides a consistent interface.

    Type parameter T represents the entity type this repository manages.
    """

    @abstractmethod
    def get_by_id(self, id: str) -> Optional[T]:
        """
        Get an entity by its ID.

        Args:
            id: The entity's unique identifier

        Returns:
            The entity if found, None otherwise
        """
        pass

    @abstractmethod
    def find(self, options: Optional[QueryOptions] = None) -> QueryResult[T]:
        """
        Find entities matching the query options.

        Args:
            options: Query options for filtering, pagination, sorting

        Returns:
            QueryResult containing the matching entities
        """
        pass

    @abstractmethod
    def save(self, entity: T) -> T:
        """
        Save an entity (create or update).

        Args:
            entity: The entity to save

        Returns:
            The saved entity (may have updated fields like ID)
        """
        pass

    @abstractmethod
    def delete(self, id: str) -> bool:
        """
        Delete an entity by ID.

        Args:
            id: The entity's unique identifier

        Returns:
            True if deleted, False if not found
        """
        pass


# =============================================================================
# UNIT OF WORK PATTERN (transactional operations)
# =============================================================================

class UnitOfWork(ABC):
    """
    Abstract base class for Unit of Work pattern.

    Provides transactional semantics across multiple entity mutations.
    Use when you need to ensure multiple operations succeed or fail together.
    """

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is None:
            self.commit()
        else:
            self.rollback()
        return False

    @abstractmethod
    def commit(self):
        """Commit all changes."""
        pass

    @abstractmethod
    def rollback(self):
        """Rollback all changes."""
        pass


class SnapshotUnitOfWork(UnitOfWork):
    """
    Unit of work over in-memory entities.

    Tracked entities have their attribute state captured when tracked. On
    rollback every tracked entity is restored to that state, which also drops
    any child records appended to tracked collections during the unit of work.
    Collections are copied one level deep; nested entities must be tracked
    on their own.

    Example:
        with SnapshotUnitOfWork(order, *order.shipments) as uow:
            uow.track(stock_item)
            ...
    """

    def __init__(self, *entities: Any):
        self._snapshots: Dict[int, tuple] = {}
        self.track(*entities)

    def track(self, *entities: Any) -> None:
        for entity in entities:
            if entity is None or id(entity) in self._snapshots:
                continue
            self._snapshots[id(entity)] = (entity, self._capture(entity))

    @staticmethod
    def _capture(entity: Any) -> Dict[str, Any]:
        state = {}
        for name, value in vars(entity).items():
            if isinstance(value, list):
                value = list(value)
            elif isinstance(value, dict):
                value = dict(value)
            state[name] = value
        return state

    def commit(self):
        self._snapshots.clear()

    def rollback(self):
        logger.info(f"Rolling back unit of work ({len(self._snapshots)} tracked records)")
        for entity, state in self._snapshots.values():
            attributes = vars(entity)
            attributes.clear()
            attributes.update(state)
        self._snapshots.clear()
