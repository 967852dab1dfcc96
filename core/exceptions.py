"""Exceptions raised by the commerce core."""

from typing import Optional


class CommerceError(Exception):
    """Base exception for all commerce core errors."""

    pass


class RecordNotFoundError(CommerceError):
    """Raised when a record lookup by identifier fails."""

    def __init__(self, kind: str, identifier: str):
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} not found: {identifier}")


class InvalidTransitionError(CommerceError):
    """Raised when a lifecycle event cannot fire from the current state."""

    def __init__(self, event: str, state: str, reason: Optional[str] = None):
        self.event = event
        self.state = state
        msg = f"Cannot transition state via :{event} from :{state}"
        if reason:
            msg = f"{msg} ({reason})"
        super().__init__(msg)


class ExchangeError(CommerceError):
    """Base exception for exchange failures."""

    pass


class MissingExchangeVariantError(ExchangeError):
    """Raised when a return item in an exchange has no replacement variant."""

    def __init__(self, return_item_id: str):
        self.return_item_id = return_item_id
        super().__init__(f"Return item {return_item_id} has no exchange variant")


class UnableToCreateShipmentsError(ExchangeError):
    """Raised when stock cannot cover every exchange unit."""

    pass


class ExchangeAlreadyPerformedError(ExchangeError):
    """Raised when a return item's exchange has already been shipped."""

    def __init__(self, return_item_id: str):
        self.return_item_id = return_item_id
        super().__init__(f"Return item {return_item_id} has already been exchanged")
