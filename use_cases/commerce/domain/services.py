"""
Domain Services - Business Operations.

These services orchestrate business logic across several entities.
They use policies for decisions and work on the in-memory entities;
each mutating operation runs inside a single unit of work.
"""

import logging
from decimal import Decimal
from typing import Dict, List, Optional, Sequence

from core.data import SnapshotUnitOfWork
from core.domain import DomainService, PolicyDecision, PolicyResult
from core.exceptions import (
    ExchangeAlreadyPerformedError,
    ExchangeError,
    MissingExchangeVariantError,
    UnableToCreateShipmentsError,
)

from .models import (
    AcceptanceStatus,
    InventoryUnit,
    InventoryUnitState,
    Money,
    Order,
    OrderPaymentState,
    OrderShipmentState,
    OrderState,
    ReturnItem,
    Shipment,
    ShipmentState,
    Variant,
)
from .policies import DefaultEligibilityValidator, ValidatorFactory

logger = logging.getLogger(__name__)


class OrderUpdater(DomainService):
    """
    Recomputes an order's totals and state roll-ups.

    Totals are always recomputed. Payment state, shipment states and the
    shipment roll-up are only maintained for completed orders.
    """

    def execute(self, order: Order) -> Order:
        self.update_totals(order)
        if order.completed:
            self.update_payment_state(order)
            self.update_shipments(order)
            self.update_shipment_state(order)
        return order

    def update_totals(self, order: Order) -> None:
        live_shipments = [s for s in order.shipments if s.state != ShipmentState.CANCELED]

        order.item_total = sum((li.amount for li in order.line_items), Decimal("0"))
        order.shipment_total = sum((s.cost for s in live_shipments), Decimal("0"))
        order.additional_tax_total = (
            sum((li.additional_tax_total for li in order.line_items), Decimal("0"))
            + sum((s.additional_tax_total for s in live_shipments), Decimal("0"))
        )
        order.total = (
            order.item_total + order.shipment_total
            + order.additional_tax_total + order.promo_total
        )
        order.payment_total = sum(
            (p.amount for p in order.payments if p.is_completed), Decimal("0")
        )

    def update_payment_state(self, order: Order) -> None:
        # The payment state of a canceled order is settled by the cancel event
        if order.state == OrderState.CANCELED:
            return

        if order.payments and not any(p.is_valid for p in order.payments):
            order.payment_state = OrderPaymentState.FAILED
        elif order.outstanding_balance > 0:
            order.payment_state = OrderPaymentState.BALANCE_DUE
        elif order.outstanding_balance < 0:
            order.payment_state = OrderPaymentState.CREDIT_OWED
        else:
            order.payment_state = OrderPaymentState.PAID

    def update_shipments(self, order: Order) -> None:
        """Move unshipped shipments between pending and ready."""
        can_ship = order.payment_state in (OrderPaymentState.PAID, OrderPaymentState.CREDIT_OWED)
        for shipment in order.shipments:
            if shipment.state in (ShipmentState.SHIPPED, ShipmentState.CANCELED):
                continue
            backordered = any(
                unit.state == InventoryUnitState.BACKORDERED for unit in shipment.inventory_units
            )
            shipment.state = ShipmentState.READY if can_ship and not backordered else ShipmentState.PENDING

    def update_shipment_state(self, order: Order) -> None:
        if order.is_backordered:
            order.shipment_state = OrderShipmentState.BACKORDER
            return

        states = {shipment.state for shipment in order.shipments}
        if len(states) > 1:
            # Mixed shipment states mean the order is partially shipped
            order.shipment_state = OrderShipmentState.PARTIAL
        elif states:
            order.shipment_state = OrderShipmentState(states.pop().value)
        else:
            order.shipment_state = None


class ReturnItemAcceptance(DomainService):
    """
    Runs the eligibility chain against a return item and records the outcome.

    The decision gates whether an exchange may be performed for the item.
    """

    def __init__(self, validators: Optional[Sequence[ValidatorFactory]] = None):
        self.validators = validators

    def execute(self, return_item: ReturnItem) -> PolicyDecision:
        validator = DefaultEligibilityValidator(return_item, self.validators)
        decision = validator.evaluate()

        if decision.result == PolicyResult.APPROVED:
            return_item.acceptance_status = AcceptanceStatus.ACCEPTED
        elif decision.result == PolicyResult.REQUIRES_REVIEW:
            return_item.acceptance_status = AcceptanceStatus.MANUAL_INTERVENTION_REQUIRED
        else:
            return_item.acceptance_status = AcceptanceStatus.REJECTED
        return_item.acceptance_status_errors = validator.errors

        logger.info(
            f"Return item {return_item.id} {return_item.acceptance_status.value}: {decision.reason}"
        )
        return decision


class Exchange(DomainService):
    """
    Converts return items into a shipment of replacement inventory.

    An Exchange is never stored. It is built from an order and the return
    items being exchanged, describes the change, and on `perform()` adds one
    shipment with one new inventory unit per return item to the order.
    """

    param_key = "exchange"
    model_name = "Exchange"

    def __init__(
        self,
        order: Optional[Order],
        return_items: Optional[Sequence[ReturnItem]],
        updater: Optional[OrderUpdater] = None,
    ):
        self.order = order
        self.return_items: List[ReturnItem] = list(return_items or [])
        self.updater = updater or OrderUpdater()

    @property
    def description(self) -> str:
        return "\n".join(
            f"{item.variant.options_text} => {item.exchange_variant.options_text}"
            for item in self.return_items
        )

    @property
    def display_amount(self) -> Money:
        currency = self.order.currency if self.order is not None else "USD"
        total = sum((item.total for item in self.return_items), Decimal("0"))
        return Money(total, currency)

    def to_key(self) -> Optional[tuple]:
        """Key for display identifiers; derived from the order."""
        if self.order is None:
            return None
        return (self.order.number,)

    def execute(self) -> Shipment:
        return self.perform()

    def perform(self) -> Shipment:
        """
        Create the exchange shipment.

        Raises:
            ExchangeError: If there is no order or nothing to exchange
            MissingExchangeVariantError: If a return item has no exchange variant
            ExchangeAlreadyPerformedError: If a return item was already exchanged
            UnableToCreateShipmentsError: If stock cannot cover every unit
        """
        if self.order is None:
            raise ExchangeError("An exchange requires an order")
        if not self.return_items:
            raise ExchangeError("An exchange requires at least one return item")

        requested = self._requested_quantities()
        for variant, quantity in requested.values():
            if not variant.can_supply(quantity):
                raise UnableToCreateShipmentsError(
                    f"Could not generate shipments for all items. Out of stock? "
                    f"(variant {variant.sku or variant.id} needs {quantity}, "
                    f"has {variant.total_on_hand})"
                )

        stock_items = [item for variant, _ in requested.values() for item in variant.stock_items]
        with SnapshotUnitOfWork(self.order, *stock_items, *self.return_items):
            shipment = Shipment(order=self.order, state=ShipmentState.READY)
            for item in self.return_items:
                stock_item = item.exchange_variant.stock_item_for(1)
                on_hand = stock_item.count_on_hand > 0
                unit = shipment.add_inventory_unit(InventoryUnit(
                    variant=item.exchange_variant,
                    line_item=item.inventory_unit.line_item,
                    state=InventoryUnitState.ON_HAND if on_hand else InventoryUnitState.BACKORDERED,
                    original_return_item=item,
                ))
                stock_item.adjust_count_on_hand(-1)
                item.exchange_inventory_unit = unit

            if any(unit.state == InventoryUnitState.BACKORDERED for unit in shipment.inventory_units):
                shipment.state = ShipmentState.PENDING

            self.order.shipments.append(shipment)
            self.updater.update_totals(self.order)
            self.updater.update_shipment_state(self.order)

        logger.info(
            f"Exchange for order {self.order.number} created shipment {shipment.number} "
            f"with {len(shipment.inventory_units)} unit(s)"
        )
        return shipment

    def _requested_quantities(self) -> Dict[str, tuple]:
        requested: Dict[str, tuple] = {}
        seen = set()
        for item in self.return_items:
            if id(item) in seen:
                raise ExchangeError(f"Return item {item.id} is listed more than once")
            seen.add(id(item))
            if item.is_exchange_processed:
                raise ExchangeAlreadyPerformedError(item.id)
            if not item.is_exchange_requested:
                raise MissingExchangeVariantError(item.id)
            variant: Variant = item.exchange_variant
            _, quantity = requested.get(variant.id, (variant, 0))
            requested[variant.id] = (variant, quantity + 1)
        return requested
