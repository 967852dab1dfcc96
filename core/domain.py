"""
Domain Layer Base Classes.

The domain layer contains pure business logic with no external dependencies.
This makes business rules:
- Easy to test (no mocking needed)
- Reusable across the HTTP boundary and background jobs
- Clear and self-documenting

Example Usage:
    class OrderCompleted(PolicyEngine):
        def evaluate(self, context: dict) -> PolicyDecision:
            # Pure business logic here
            ...
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List
from datetime import datetime, timezone
from enum import Enum


class PolicyResult(Enum):
    """Result of a policy evaluation."""
    APPROVED = "approved"
    DENIED = "denied"
    REQUIRES_REVIEW = "requires_review"


@dataclass
class PolicyDecision:
    """
    The outcome of a policy evaluation.

    Attributes:
        result: The policy decision result
        reason: Human-readable explanation
        errors: Field-keyed error messages collected during evaluation
        metadata: Additional context for the decision
    """
    result: PolicyResult
    reason: str
    errors: Dict[str, str] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_approved(self) -> bool:
        return self.result == PolicyResult.APPROVED

    @property
    def is_denied(self) -> bool:
        return self.result == PolicyResult.DENIED


class PolicyEngine(ABC):
    """
    Abstract base class for policy engines.

    A PolicyEngine encapsulates a set of business rules that can be
    evaluated against a context to produce a decision.

    Example:
        class RMARequired(PolicyEngine):
            def evaluate(self, context: dict) -> PolicyDecision:
                if context["return_item"].return_authorization is None:
                    return PolicyDecision(
                        result=PolicyResult.DENIED,
                        reason="Return item requires an RMA"
                    )
                return PolicyDecision(
                    result=PolicyResult.APPROVED,
                    reason="RMA present"
                )
    """

    @abstractmethod
    def evaluate(self, context: Dict[str, Any]) -> PolicyDecision:
        """
        Evaluate the policy against the given context.

        Args:
            context: Dictionary containing all data needed for evaluation

        Returns:
            PolicyDecision with the result and explanation
        """
        pass


class DomainService(ABC):
    """
    Abstract base class for domain services.

    Domain services contain business logic that doesn't belong to a single entity.
    They orchestrate multiple policies and entities to perform complex operations.

    Key principles:
    - No network I/O (gateways and notifiers are injected collaborators)
    - All dependencies passed as parameters
    - Return domain objects, not DTOs
    """

    @abstractmethod
    def execute(self, *args, **kwargs) -> Any:
        """
        Execute the domain service operation.

        Implementation should contain pure business logic only.
        """
        pass


@dataclass
class ValidationError:
    """A validation error with field and message."""
    field: str
    message: str
    code: str = "invalid"


class Validator(ABC):
    """
    Abstract base class for validators.

    Validators check that an entity meets business requirements before it is
    saved. Errors are reported per field and never raised.
    """

    @abstractmethod
    def validate(self, entity: Any) -> List[ValidationError]:
        """
        Validate the entity and return any errors.

        Args:
            entity: The entity to validate

        Returns:
            List of ValidationError objects (empty if valid)
        """
        pass

    def is_valid(self, entity: Any) -> bool:
        """Check if the entity is valid."""
        return len(self.validate(entity)) == 0


def errors_by_field(errors: List[ValidationError]) -> Dict[str, List[str]]:
    """Group validation errors into a field -> messages mapping."""
    grouped: Dict[str, List[str]] = {}
    for error in errors:
        grouped.setdefault(error.field, []).append(error.message)
    return grouped


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================

def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_aware(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
