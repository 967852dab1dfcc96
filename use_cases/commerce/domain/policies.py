"""
Return and Catalog Policies - Pure Business Rules.

These policies encapsulate the business rules for return eligibility and
product property validation. They have NO dependencies on the HTTP layer
and never raise for a rule violation; violations are reported as errors.
"""

from abc import abstractmethod
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Sequence

from core.data import QueryOptions, Repository
from core.domain import (
    PolicyDecision,
    PolicyEngine,
    PolicyResult,
    ValidationError,
    Validator,
    ensure_aware,
    utcnow,
)

from .models import ProductProperty, ReturnItem


# =============================================================================
# CONFIGURATION DEFAULTS
# =============================================================================

# Days after order completion during which an item may be returned
DEFAULT_RETURN_WINDOW_DAYS = 365

# Maximum length of a product property value
MAX_PROPERTY_VALUE_LENGTH = 255

DUPLICATE_PROPERTY_VALUE = "has already been used for this product"


# =============================================================================
# RETURN ITEM ELIGIBILITY
# =============================================================================

class EligibilityValidator(PolicyEngine):
    """
    Base class for return item eligibility rules.

    A validator is bound to one return item and exposes three capabilities:
    `eligible_for_return()`, `requires_manual_intervention()` and `errors`.
    Errors are keyed by rule (e.g. ``number_of_days``) and are rebuilt on
    every eligibility check.
    """

    def __init__(self, return_item: ReturnItem):
        self.return_item = return_item
        self._errors: Dict[str, str] = {}
        self._checked = False

    def eligible_for_return(self) -> bool:
        self._errors = {}
        self._checked = True
        return self.check()

    @abstractmethod
    def check(self) -> bool:
        """Apply the rule, calling add_error() for each violation."""
        pass

    def requires_manual_intervention(self) -> bool:
        return False

    @property
    def errors(self) -> Dict[str, str]:
        if not self._checked:
            self.eligible_for_return()
        return dict(self._errors)

    def add_error(self, key: str, message: str) -> None:
        self._errors[key] = message

    def evaluate(self, context: Optional[Dict[str, Any]] = None) -> PolicyDecision:
        """Evaluate the bound return item; `context` is carried as metadata."""
        eligible = self.eligible_for_return()
        metadata = {"return_item_id": self.return_item.id, **(context or {})}

        if not eligible:
            return PolicyDecision(
                result=PolicyResult.DENIED,
                reason="; ".join(self._errors.values()) or "Return item is not eligible for return",
                errors=dict(self._errors),
                metadata=metadata,
            )

        if self.requires_manual_intervention():
            return PolicyDecision(
                result=PolicyResult.REQUIRES_REVIEW,
                reason="Return item requires manual intervention",
                errors=dict(self._errors),
                metadata=metadata,
            )

        return PolicyDecision(
            result=PolicyResult.APPROVED,
            reason="Return item is eligible for return",
            metadata=metadata,
        )


class TimeSincePurchase(EligibilityValidator):
    """
    Rejects items whose order completed more than the return window ago.

    Items from orders that never completed are rejected as well.
    """

    def __init__(
        self,
        return_item: ReturnItem,
        return_window_days: int = DEFAULT_RETURN_WINDOW_DAYS,
        clock: Callable[[], datetime] = utcnow,
    ):
        super().__init__(return_item)
        self.return_window_days = return_window_days
        self._clock = clock

    def check(self) -> bool:
        order = self.return_item.order
        if order is not None and order.completed_at is not None:
            deadline = ensure_aware(order.completed_at) + timedelta(days=self.return_window_days)
            if deadline > self._clock():
                return True

        self.add_error("number_of_days", "Return item is outside the eligible time period")
        return False


class RMARequired(EligibilityValidator):
    """Rejects items that are not attached to a return authorization."""

    def check(self) -> bool:
        if self.return_item.return_authorization is not None:
            return True
        self.add_error("rma_required", "Return item requires an RMA")
        return False


class InventoryShipped(EligibilityValidator):
    """Rejects items whose inventory unit never left the warehouse."""

    def check(self) -> bool:
        if self.return_item.inventory_unit.is_shipped:
            return True
        self.add_error("inventory_unit_shipped", "Return item's inventory unit has not shipped")
        return False


class OrderCompleted(EligibilityValidator):
    """Rejects items from orders that have not completed checkout."""

    def check(self) -> bool:
        order = self.return_item.order
        if order is not None and order.completed:
            return True
        self.add_error("order_not_completed", "Return item's order must be completed")
        return False


# A factory builds a validator bound to a return item. Validator classes are
# factories; configured variants are built with functools.partial.
ValidatorFactory = Callable[[ReturnItem], EligibilityValidator]

DEFAULT_ELIGIBILITY_VALIDATORS: Sequence[ValidatorFactory] = (
    TimeSincePurchase,
    RMARequired,
)

# Validators selectable by name from configuration
ELIGIBILITY_VALIDATORS: Dict[str, type] = {
    "time_since_purchase": TimeSincePurchase,
    "rma_required": RMARequired,
    "inventory_shipped": InventoryShipped,
    "order_completed": OrderCompleted,
}


class DefaultEligibilityValidator(EligibilityValidator):
    """
    Composite validator that runs an ordered chain of validators.

    Combines:
        - eligible: every validator is eligible
        - manual intervention: any validator asks for it
        - errors: merged in chain order, so a later validator's message
          replaces an earlier one under the same key

    Every validator in the chain is checked, even after one has failed, so
    the merged errors describe all failing rules.
    """

    def __init__(
        self,
        return_item: ReturnItem,
        validators: Optional[Sequence[ValidatorFactory]] = None,
    ):
        super().__init__(return_item)
        factories = DEFAULT_ELIGIBILITY_VALIDATORS if validators is None else validators
        self.validators: List[EligibilityValidator] = [factory(return_item) for factory in factories]

    def check(self) -> bool:
        results = [validator.eligible_for_return() for validator in self.validators]
        for validator in self.validators:
            self._errors.update(validator.errors)
        return all(results)

    def requires_manual_intervention(self) -> bool:
        return any(validator.requires_manual_intervention() for validator in self.validators)

    @property
    def errors(self) -> Dict[str, str]:
        merged: Dict[str, str] = {}
        for validator in self.validators:
            merged.update(validator.errors)
        return merged


# =============================================================================
# PRODUCT PROPERTIES
# =============================================================================

class ProductPropertyValidator(Validator):
    """
    Validates a product property before it is saved.

    Rules:
        - a property is required
        - value is at most 255 characters
        - a product may not carry the same property name with the same
          value twice
    """

    def __init__(self, product_properties: Repository[ProductProperty]):
        self.product_properties = product_properties

    def validate(self, entity: ProductProperty) -> List[ValidationError]:
        errors = []

        if entity.property is None:
            errors.append(ValidationError(
                field="property",
                message="can't be blank",
                code="blank",
            ))

        if entity.value and len(entity.value) > MAX_PROPERTY_VALUE_LENGTH:
            errors.append(ValidationError(
                field="value",
                message=f"is too long (maximum is {MAX_PROPERTY_VALUE_LENGTH} characters)",
                code="too_long",
            ))

        if self._is_duplicate(entity):
            errors.append(ValidationError(
                field="value",
                message=DUPLICATE_PROPERTY_VALUE,
                code="taken",
            ))

        return errors

    def _is_duplicate(self, entity: ProductProperty) -> bool:
        if entity.property is None:
            return False

        matches = self.product_properties.find(QueryOptions(
            limit=0,
            filters={"product": entity.product, "value": entity.value},
        ))
        return any(
            other is not entity and other.property_name == entity.property_name
            for other in matches.data
        )
