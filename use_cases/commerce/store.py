"""
In-Memory Record Store for the Commerce Use Case.

Provides repositories for orders, catalog records and return items. The
store stands in for a transactional database: mutating domain operations
wrap their changes in a SnapshotUnitOfWork.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Dict, Generic, Iterator, List, Optional

from core.data import QueryOptions, QueryResult, Repository, T
from core.domain import ValidationError
from core.exceptions import RecordNotFoundError

from .domain.models import (
    Order,
    Product,
    ProductProperty,
    Property,
    ReturnItem,
    Variant,
)
from .domain.policies import ProductPropertyValidator

logger = logging.getLogger(__name__)


class InMemoryRepository(Repository[T], Generic[T]):
    """
    Dict-backed repository keyed by the entity's `id`.

    `find` filters on attribute equality (identity for entity references).
    A limit of 0 or less returns every match.
    """

    def __init__(self, kind: str):
        self.kind = kind
        self._records: Dict[str, T] = {}

    def get_by_id(self, id: str) -> Optional[T]:
        return self._records.get(id)

    def get(self, id: str) -> T:
        record = self.get_by_id(id)
        if record is None:
            raise RecordNotFoundError(self.kind, id)
        return record

    def find(self, options: Optional[QueryOptions] = None) -> QueryResult[T]:
        options = options or QueryOptions()

        matches = [
            record for record in self._records.values()
            if all(getattr(record, name, None) == value for name, value in options.filters.items())
        ]
        if options.order_by:
            matches.sort(key=lambda record: getattr(record, options.order_by), reverse=options.order_desc)

        total_count = len(matches)
        if options.limit > 0:
            page = matches[options.offset:options.offset + options.limit]
        else:
            page = matches[options.offset:]
        next_offset = options.offset + len(page)
        has_more = next_offset < total_count

        return QueryResult(
            data=page,
            total_count=total_count,
            has_more=has_more,
            next_offset=next_offset if has_more else None,
        )

    def save(self, entity: T) -> T:
        self._records[entity.id] = entity
        return entity

    def delete(self, id: str) -> bool:
        return self._records.pop(id, None) is not None

    def all(self) -> List[T]:
        return list(self._records.values())


class RecordStore:
    """
    Repositories for every persisted commerce record.

    Requests are served from a thread pool, so every read-modify-write of
    the records runs inside `transaction()`.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self.orders: InMemoryRepository[Order] = InMemoryRepository("Order")
        self.products: InMemoryRepository[Product] = InMemoryRepository("Product")
        self.variants: InMemoryRepository[Variant] = InMemoryRepository("Variant")
        self.properties: InMemoryRepository[Property] = InMemoryRepository("Property")
        self.product_properties: InMemoryRepository[ProductProperty] = InMemoryRepository("ProductProperty")
        self.return_items: InMemoryRepository[ReturnItem] = InMemoryRepository("ReturnItem")
        self.product_property_validator = ProductPropertyValidator(self.product_properties)

    @contextmanager
    def transaction(self) -> Iterator["RecordStore"]:
        """Hold the store lock for the duration of the block."""
        with self._lock:
            yield self

    # =========================================================================
    # ORDERS
    # =========================================================================

    def find_order(self, number: str) -> Order:
        order = self.orders.find(QueryOptions(limit=1, filters={"number": number})).first()
        if order is None:
            raise RecordNotFoundError("Order", number)
        return order

    # =========================================================================
    # CATALOG
    # =========================================================================

    def save_product(self, product: Product) -> Product:
        """Save a product together with its variants."""
        self.products.save(product)
        for variant in product.variants:
            self.variants.save(variant)
        return product

    def find_or_create_property(self, name: str) -> Property:
        existing = self.properties.find(QueryOptions(limit=1, filters={"name": name})).first()
        if existing is not None:
            return existing
        logger.info(f"Creating property '{name}'")
        return self.properties.save(Property(name=name, presentation=name))

    def build_product_property(self, product: Product, property_name: str, value: str) -> ProductProperty:
        """Build an unsaved product property, creating the property by name if needed."""
        product_property = ProductProperty(product=product, value=value)
        if property_name and property_name.strip():
            product_property.property = self.find_or_create_property(property_name)
        return product_property

    def save_product_property(self, product_property: ProductProperty) -> List[ValidationError]:
        """
        Validate and save a product property.

        Returns:
            The validation errors; the property is only saved when empty
        """
        errors = self.product_property_validator.validate(product_property)
        if errors:
            return errors

        product = product_property.product
        if product_property not in product.product_properties:
            product_property.position = len(product.product_properties) + 1
            product.product_properties.append(product_property)
        self.product_properties.save(product_property)
        return []


_store: Optional[RecordStore] = None


def get_record_store() -> RecordStore:
    """Get the process-wide record store, creating it on first use."""
    global _store
    if _store is None:
        _store = RecordStore()
    return _store
