"""
Order State Machine.

Drives an Order through its lifecycle:

    cart -> address -> delivery -> payment -> confirm -> complete
                               \\-> confirm (when no payment is required)

plus `cancel` (to canceled) and `resume` (canceled -> resumed).

Transitions are declared in a table of (event, from, to, condition, guard).
The driver picks the transition for the current state, checks its guard,
then runs the transition effects explicitly:

    leaving delivery   apply_free_shipping_promotions
    entering delivery  create_tax_charge, create_proposed_shipments, set_shipments_cost
    entering complete  finalize
    cancel             restock_items, cancel shipments and payments, void payment state
    resume             unstock_items, reopen shipments

Each event runs inside one unit of work; an exception raised by an effect
restores the order, its shipments, payments and stock. Notifications are
sent after the unit of work commits and never undo a transition.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Callable, List, Optional, Sequence

from core.data import SnapshotUnitOfWork
from core.domain import utcnow
from core.exceptions import InvalidTransitionError

from .calculators import Calculator, FlatRate
from .models import (
    CENTS,
    InventoryUnit,
    InventoryUnitState,
    Order,
    OrderPaymentState,
    OrderShipmentState,
    OrderState,
    Payment,
    PaymentState,
    Shipment,
    ShipmentState,
    StateChange,
    to_decimal,
)
from .services import OrderUpdater

logger = logging.getLogger(__name__)


# Order shipment states from which a completed order may still be canceled
CANCELABLE_SHIPMENT_STATES = (
    OrderShipmentState.PENDING,
    OrderShipmentState.BACKORDER,
    OrderShipmentState.READY,
)


# =============================================================================
# COLLABORATORS
# =============================================================================

class TaxAdjuster(ABC):
    """Applies tax adjustments to taxable items (line items or shipments)."""

    @abstractmethod
    def adjust(self, order: Order, items: Sequence[Any]) -> None:
        pass


class TaxRateAdjuster(TaxAdjuster):
    """Additional (not price-included) tax at the sum of the given percentages."""

    def __init__(self, rates: Optional[Sequence[Any]] = None):
        self.rates = [to_decimal(rate) for rate in (rates or [])]

    def adjust(self, order: Order, items: Sequence[Any]) -> None:
        percent = sum(self.rates, Decimal("0"))
        for item in items:
            tax = item.taxable_amount * percent / 100
            item.additional_tax_total = tax.quantize(CENTS, rounding=ROUND_HALF_UP)


class PaymentGateway(ABC):
    """
    External payment capability.

    `capture` returns False for a declined payment. Raising signals an
    unexpected gateway failure and aborts the surrounding transition.
    """

    @abstractmethod
    def capture(self, payment: Payment) -> bool:
        pass

    @abstractmethod
    def cancel(self, payment: Payment) -> None:
        """Void or refund a captured payment."""
        pass


class OfflinePaymentGateway(PaymentGateway):
    """Accepts every payment; used for check / cash-on-delivery style methods."""

    def capture(self, payment: Payment) -> bool:
        payment.response_code = f"OFFLINE-{payment.id}"
        return True

    def cancel(self, payment: Payment) -> None:
        logger.info(f"Voided offline payment {payment.id}")


class OrderNotifier(ABC):
    """Sends customer notifications about order lifecycle events."""

    @abstractmethod
    def send_confirmation(self, order: Order) -> None:
        pass

    @abstractmethod
    def send_cancellation(self, order: Order) -> None:
        pass


class LoggingNotifier(OrderNotifier):
    """Writes notifications to the log instead of sending mail."""

    def send_confirmation(self, order: Order) -> None:
        logger.info(f"Order confirmation for {order.number} to {order.email or '<no email>'}")

    def send_cancellation(self, order: Order) -> None:
        logger.info(f"Order cancellation for {order.number} to {order.email or '<no email>'}")


# =============================================================================
# TRANSITIONS
# =============================================================================

@dataclass(frozen=True)
class Transition:
    """
    One legal state change.

    `condition` selects between alternative routes for the same event and
    state; `guard` decides whether the selected route may fire.
    """
    event: str
    from_state: OrderState
    to_state: OrderState
    condition: Optional[Callable[[Order], bool]] = None
    guard: Optional[Callable[[Order], bool]] = None


class OrderStateMachine:
    """
    Explicit driver for the order lifecycle.

    Args:
        tax_adjuster: Applies tax to line items and shipments
        payment_gateway: Captures and cancels payments
        notifier: Sends confirmation and cancellation notices
        shipping_calculator: Computes each shipment's cost
        updater: Recomputes totals and state roll-ups
        free_shipping_threshold: Item total at which shipping becomes free
    """

    def __init__(
        self,
        tax_adjuster: Optional[TaxAdjuster] = None,
        payment_gateway: Optional[PaymentGateway] = None,
        notifier: Optional[OrderNotifier] = None,
        shipping_calculator: Optional[Calculator] = None,
        updater: Optional[OrderUpdater] = None,
        free_shipping_threshold: Optional[Any] = None,
    ):
        self.tax_adjuster = tax_adjuster or TaxRateAdjuster()
        self.payment_gateway = payment_gateway or OfflinePaymentGateway()
        self.notifier = notifier or LoggingNotifier()
        self.shipping_calculator = shipping_calculator or FlatRate(0)
        self.updater = updater or OrderUpdater()
        self.free_shipping_threshold = (
            None if free_shipping_threshold is None else to_decimal(free_shipping_threshold)
        )
        self.transitions = self._build_transitions()

    def _build_transitions(self) -> List[Transition]:
        transitions = [
            Transition("next", OrderState.CART, OrderState.ADDRESS, guard=self.has_line_items),
            Transition("next", OrderState.ADDRESS, OrderState.DELIVERY),
            Transition(
                "next", OrderState.DELIVERY, OrderState.PAYMENT,
                condition=lambda order: order.payment_required,
            ),
            Transition(
                "next", OrderState.DELIVERY, OrderState.CONFIRM,
                condition=lambda order: not order.payment_required,
            ),
            Transition("next", OrderState.PAYMENT, OrderState.CONFIRM, guard=self.has_payment_source),
            Transition("next", OrderState.CONFIRM, OrderState.COMPLETE, guard=self.payments_settled),
            Transition("resume", OrderState.CANCELED, OrderState.RESUMED, guard=self.allow_resume),
        ]
        transitions.extend(
            Transition("cancel", state, OrderState.CANCELED, guard=self.allow_cancel)
            for state in OrderState
            if state != OrderState.CANCELED
        )
        return transitions

    # =========================================================================
    # EVENTS
    # =========================================================================

    def next(self, order: Order) -> bool:
        """Advance one step. Returns False, changing nothing, when it cannot."""
        return self._fire(order, "next", strict=False)

    def next_or_raise(self, order: Order) -> bool:
        """Advance one step or raise InvalidTransitionError."""
        return self._fire(order, "next", strict=True)

    def cancel(self, order: Order) -> bool:
        """Cancel a completed, not yet shipped order. Raises when not allowed."""
        return self._fire(order, "cancel", strict=True)

    def resume(self, order: Order) -> bool:
        """Resume a canceled order. Raises when not allowed."""
        return self._fire(order, "resume", strict=True)

    def can_cancel(self, order: Order) -> bool:
        return self._transition_for(order, "cancel") is not None and self.allow_cancel(order)

    def can_resume(self, order: Order) -> bool:
        return self._transition_for(order, "resume") is not None and self.allow_resume(order)

    # =========================================================================
    # GUARDS
    # =========================================================================

    def allow_cancel(self, order: Order) -> bool:
        return order.completed and order.shipment_state in CANCELABLE_SHIPMENT_STATES

    def allow_resume(self, order: Order) -> bool:
        # Orders without a recorded pre-cancel state cannot be restored
        if order.state != OrderState.CANCELED or not order.state_changes:
            return False
        return order.state_changes[-1].previous_state is not None

    def has_line_items(self, order: Order) -> bool:
        return len(order.line_items) > 0

    def has_payment_source(self, order: Order) -> bool:
        return not order.payment_required or any(p.is_valid for p in order.payments)

    def payments_settled(self, order: Order) -> bool:
        return not order.payment_required or self.process_payments(order)

    # =========================================================================
    # DRIVER
    # =========================================================================

    def _transition_for(self, order: Order, event: str) -> Optional[Transition]:
        for transition in self.transitions:
            if transition.event != event or transition.from_state != order.state:
                continue
            if transition.condition is None or transition.condition(order):
                return transition
        return None

    def _fire(self, order: Order, event: str, strict: bool) -> bool:
        transition = self._transition_for(order, event)
        if transition is None:
            if strict:
                raise InvalidTransitionError(event, order.state.value)
            return False

        with SnapshotUnitOfWork(*self._records(order)):
            allowed = transition.guard is None or transition.guard(order)
            if allowed:
                self._before_transition(order, transition)
                previous = order.state
                order.state = transition.to_state
                order.state_changes.append(StateChange(
                    name="order",
                    previous_state=previous.value,
                    next_state=transition.to_state.value,
                ))
                self._after_transition(order, transition)
                self.updater.execute(order)

        if not allowed:
            logger.info(
                f"Order {order.number}: :{event} from :{order.state.value} rejected by guard"
            )
            if strict:
                raise InvalidTransitionError(event, order.state.value, "guard rejected transition")
            return False

        logger.info(
            f"Order {order.number}: {transition.from_state.value} -> "
            f"{transition.to_state.value} via :{event}"
        )
        if transition.to_state == OrderState.COMPLETE:
            self._notify(self.notifier.send_confirmation, order)
        elif transition.to_state == OrderState.CANCELED:
            self._notify(self.notifier.send_cancellation, order)
        return True

    def _records(self, order: Order) -> List[Any]:
        """Every record an event may change, for the unit of work."""
        units = order.inventory_units
        variants = {li.variant.id: li.variant for li in order.line_items}
        variants.update((unit.variant.id, unit.variant) for unit in units)
        stock_items = [item for variant in variants.values() for item in variant.stock_items]
        return [order, *order.line_items, *order.shipments, *order.payments, *units, *stock_items]

    def _before_transition(self, order: Order, transition: Transition) -> None:
        if transition.from_state == OrderState.DELIVERY and transition.event == "next":
            self.apply_free_shipping_promotions(order)

        if transition.to_state == OrderState.DELIVERY:
            self.create_tax_charge(order)
            self.create_proposed_shipments(order)
            self.set_shipments_cost(order)

        if transition.to_state == OrderState.CANCELED:
            self.restock_items(order)
            self.cancel_shipments(order)
            self.cancel_payments(order)

    def _after_transition(self, order: Order, transition: Transition) -> None:
        if transition.to_state == OrderState.COMPLETE:
            self.finalize(order)

        if transition.to_state == OrderState.CANCELED:
            if not self._has_shipped(order):
                order.payment_state = OrderPaymentState.VOID

        if transition.to_state == OrderState.RESUMED:
            self.unstock_items(order)
            self.reopen_shipments(order)

    def _notify(self, send: Callable[[Order], None], order: Order) -> None:
        try:
            send(order)
        except Exception as e:
            logger.error(f"Failed to send notification for order {order.number}: {e}", exc_info=True)

    # =========================================================================
    # EFFECTS
    # =========================================================================

    def create_tax_charge(self, order: Order) -> None:
        """Tax the line items, then any shipments the order already has."""
        self.tax_adjuster.adjust(order, order.line_items)
        if order.shipments:
            self.tax_adjuster.adjust(order, order.shipments)

    def create_proposed_shipments(self, order: Order) -> None:
        """Build one pending shipment holding a unit per ordered item."""
        if order.shipments:
            return

        shipment = Shipment(order=order)
        allocated = {}
        for line_item in order.line_items:
            variant = line_item.variant
            for _ in range(line_item.quantity):
                taken = allocated.get(variant.id, 0)
                state = (
                    InventoryUnitState.ON_HAND
                    if variant.total_on_hand > taken
                    else InventoryUnitState.BACKORDERED
                )
                shipment.add_inventory_unit(InventoryUnit(
                    variant=variant,
                    line_item=line_item,
                    state=state,
                ))
                allocated[variant.id] = taken + 1
        order.shipments.append(shipment)

    def set_shipments_cost(self, order: Order) -> None:
        for shipment in order.shipments:
            shipment.cost = to_decimal(self.shipping_calculator.compute(shipment))
        self.updater.update_totals(order)

    def apply_free_shipping_promotions(self, order: Order) -> None:
        if self.free_shipping_threshold is None:
            return
        self.updater.update_totals(order)
        if order.item_total >= self.free_shipping_threshold:
            for shipment in order.shipments:
                shipment.cost = Decimal("0")
            logger.info(f"Order {order.number} qualifies for free shipping")

    def process_payments(self, order: Order) -> bool:
        """
        Capture unprocessed payments until the order total is covered.

        Returns:
            True when the payments cover the order total
        """
        self.updater.update_totals(order)
        if order.payment_total >= order.total:
            return True

        unprocessed = [p for p in order.payments if p.is_unprocessed]
        if not unprocessed:
            logger.warning(f"Order {order.number}: no payment found")
            order.payment_state = OrderPaymentState.FAILED
            return False

        for payment in unprocessed:
            if order.payment_total >= order.total:
                break
            payment.state = PaymentState.PROCESSING
            if self.payment_gateway.capture(payment):
                payment.state = PaymentState.COMPLETED
                order.payment_total += payment.amount
            else:
                payment.state = PaymentState.FAILED
                logger.warning(f"Order {order.number}: payment {payment.id} was declined")

        if order.payment_total >= order.total:
            return True
        order.payment_state = OrderPaymentState.FAILED
        return False

    def finalize(self, order: Order) -> None:
        """Complete the order once: stamp it, take stock, settle roll-ups."""
        if order.completed_at is not None:
            return
        order.completed_at = utcnow()
        for unit in order.inventory_units:
            unit.variant.stock_item_for(1).adjust_count_on_hand(-1)
        self.updater.execute(order)

    def restock_items(self, order: Order) -> None:
        for shipment in order.shipments:
            if shipment.state in (ShipmentState.SHIPPED, ShipmentState.CANCELED):
                continue
            for unit in shipment.inventory_units:
                if not unit.is_shipped:
                    unit.variant.stock_item.adjust_count_on_hand(1)

    def unstock_items(self, order: Order) -> None:
        """Take stock again for the shipments the cancel event restocked."""
        for shipment in order.shipments:
            if not shipment.canceled_with_order:
                continue
            for unit in shipment.inventory_units:
                if not unit.is_shipped:
                    unit.variant.stock_item_for(1).adjust_count_on_hand(-1)

    def cancel_shipments(self, order: Order) -> None:
        for shipment in order.shipments:
            if shipment.state in (ShipmentState.SHIPPED, ShipmentState.CANCELED):
                continue
            shipment.state = ShipmentState.CANCELED
            shipment.canceled_with_order = True

    def reopen_shipments(self, order: Order) -> None:
        for shipment in order.shipments:
            if shipment.canceled_with_order:
                shipment.state = ShipmentState.PENDING
                shipment.canceled_with_order = False

    def cancel_payments(self, order: Order) -> None:
        for payment in order.payments:
            if payment.is_completed:
                self.payment_gateway.cancel(payment)
                payment.state = PaymentState.VOID

    def _has_shipped(self, order: Order) -> bool:
        if any(shipment.is_shipped for shipment in order.shipments):
            return True
        return order.shipment_state in (OrderShipmentState.SHIPPED, OrderShipmentState.PARTIAL)
