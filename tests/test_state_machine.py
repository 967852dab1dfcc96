"""Tests for the order state machine."""

from decimal import Decimal
from unittest.mock import Mock, patch

import pytest

from core.exceptions import InvalidTransitionError
from use_cases.commerce.domain.calculators import FlatRate
from use_cases.commerce.domain.models import (
    InventoryUnit,
    InventoryUnitState,
    Order,
    OrderPaymentState,
    OrderShipmentState,
    OrderState,
    PaymentState,
    Shipment,
    ShipmentState,
    StockItem,
    Variant,
)
from use_cases.commerce.domain.state_machine import (
    OrderNotifier,
    OrderStateMachine,
    PaymentGateway,
    TaxAdjuster,
    TaxRateAdjuster,
)


@pytest.fixture
def notifier():
    return Mock(spec=OrderNotifier)


@pytest.fixture
def cart(catalog):
    order = Order(number="R000000100")
    order.add_line_item(catalog.blue_32_30)
    return order


def drive_to(machine, order, state):
    while order.state != state:
        assert machine.next(order), f"stuck in {order.state.value}"


class TestCheckout:
    def test_empty_cart_cannot_advance(self, machine):
        order = Order()
        assert machine.next(order) is False
        assert order.state == OrderState.CART
        assert order.state_changes == []

    def test_next_or_raise_on_empty_cart(self, machine):
        with pytest.raises(InvalidTransitionError):
            machine.next_or_raise(Order())

    def test_full_checkout(self, catalog, cart, notifier, checkout):
        machine = OrderStateMachine(notifier=notifier)
        checkout(machine, cart)

        assert cart.state == OrderState.COMPLETE
        assert cart.completed_at is not None
        assert cart.payment_state == OrderPaymentState.PAID
        assert cart.shipment_state == OrderShipmentState.READY
        assert cart.payments[0].state == PaymentState.COMPLETED
        assert catalog.blue_32_30.total_on_hand == 4
        notifier.send_confirmation.assert_called_once_with(cart)

    def test_records_state_changes(self, machine, cart, checkout):
        checkout(machine, cart)
        assert [(c.previous_state, c.next_state) for c in cart.state_changes] == [
            ("cart", "address"),
            ("address", "delivery"),
            ("delivery", "payment"),
            ("payment", "confirm"),
            ("confirm", "complete"),
        ]

    def test_delivery_builds_shipment(self, machine, cart):
        drive_to(machine, cart, OrderState.DELIVERY)
        assert len(cart.shipments) == 1
        units = cart.shipments[0].inventory_units
        assert len(units) == 1
        assert units[0].line_item is cart.line_items[0]
        assert units[0].state == InventoryUnitState.ON_HAND

    def test_backordered_units(self, catalog, machine):
        variant = Variant(product=catalog.jeans, price="20", stock_items=[StockItem(count_on_hand=1)])
        order = Order()
        order.add_line_item(variant, quantity=2)
        drive_to(machine, order, OrderState.DELIVERY)
        states = [unit.state for unit in order.inventory_units]
        assert states == [InventoryUnitState.ON_HAND, InventoryUnitState.BACKORDERED]

    def test_shipping_cost(self, cart):
        machine = OrderStateMachine(shipping_calculator=FlatRate(5))
        drive_to(machine, cart, OrderState.DELIVERY)
        assert cart.shipment_total == Decimal("5")
        assert cart.total == Decimal("25")

    def test_free_shipping_when_leaving_delivery(self, cart):
        machine = OrderStateMachine(shipping_calculator=FlatRate(5), free_shipping_threshold=20)
        drive_to(machine, cart, OrderState.PAYMENT)
        assert cart.shipments[0].cost == Decimal("0")
        assert cart.total == Decimal("20")

    def test_payment_step_needs_payment_source(self, machine, cart):
        drive_to(machine, cart, OrderState.PAYMENT)
        assert machine.next(cart) is False
        assert cart.state == OrderState.PAYMENT

    def test_no_payment_required_skips_payment(self, catalog, machine):
        free = Variant(product=catalog.jeans, price="0", stock_items=[StockItem(count_on_hand=3)])
        order = Order()
        order.add_line_item(free)
        drive_to(machine, order, OrderState.DELIVERY)

        assert machine.next(order)
        assert order.state == OrderState.CONFIRM

        with patch.object(machine, "finalize", wraps=machine.finalize) as finalize:
            assert machine.next(order)

        assert order.state == OrderState.COMPLETE
        finalize.assert_called_once_with(order)
        assert order.completed_at is not None

    def test_next_or_raise_without_payment_finalizes_once(self, catalog, machine):
        free = Variant(product=catalog.jeans, price="0", stock_items=[StockItem(count_on_hand=3)])
        order = Order()
        order.add_line_item(free)
        drive_to(machine, order, OrderState.CONFIRM)

        with patch.object(machine, "finalize", wraps=machine.finalize) as finalize:
            machine.next_or_raise(order)

        assert order.state == OrderState.COMPLETE
        finalize.assert_called_once_with(order)
        assert free.total_on_hand == 2

    def test_finalize_takes_stock_where_it_is_held(self, catalog, machine, checkout):
        empty = StockItem(count_on_hand=0)
        stocked = StockItem(count_on_hand=3)
        variant = Variant(product=catalog.jeans, price="10", stock_items=[empty, stocked])
        order = Order()
        order.add_line_item(variant)

        checkout(machine, order)

        assert order.state == OrderState.COMPLETE
        assert order.inventory_units[0].state == InventoryUnitState.ON_HAND
        assert empty.count_on_hand == 0
        assert stocked.count_on_hand == 2

    def test_finalize_runs_once(self, machine, completed_order, catalog):
        completed_at = completed_order.completed_at
        machine.finalize(completed_order)
        assert completed_order.completed_at == completed_at
        assert catalog.blue_32_30.total_on_hand == 4


class TestPayments:
    def test_declined_payment_stays_in_confirm(self, cart, notifier):
        gateway = Mock(spec=PaymentGateway)
        gateway.capture.return_value = False
        machine = OrderStateMachine(payment_gateway=gateway, notifier=notifier)
        drive_to(machine, cart, OrderState.PAYMENT)
        cart.add_payment(amount=cart.total)
        drive_to(machine, cart, OrderState.CONFIRM)

        assert machine.next(cart) is False
        assert cart.state == OrderState.CONFIRM
        assert cart.completed_at is None
        assert cart.payments[0].state == PaymentState.FAILED
        assert cart.payment_state == OrderPaymentState.FAILED
        notifier.send_confirmation.assert_not_called()

    def test_declined_payment_raises_with_next_or_raise(self, cart):
        gateway = Mock(spec=PaymentGateway)
        gateway.capture.return_value = False
        machine = OrderStateMachine(payment_gateway=gateway)
        drive_to(machine, cart, OrderState.PAYMENT)
        cart.add_payment(amount=cart.total)
        drive_to(machine, cart, OrderState.CONFIRM)

        with pytest.raises(InvalidTransitionError):
            machine.next_or_raise(cart)

    def test_gateway_error_rolls_back(self, cart, catalog):
        gateway = Mock(spec=PaymentGateway)
        gateway.capture.side_effect = RuntimeError("gateway unavailable")
        machine = OrderStateMachine(payment_gateway=gateway)
        drive_to(machine, cart, OrderState.PAYMENT)
        cart.add_payment(amount=cart.total)
        drive_to(machine, cart, OrderState.CONFIRM)

        with pytest.raises(RuntimeError):
            machine.next(cart)

        assert cart.state == OrderState.CONFIRM
        assert cart.payments[0].state == PaymentState.CHECKOUT
        assert catalog.blue_32_30.total_on_hand == 5


class TestTaxCharge:
    def test_line_items_taxed_once(self, cart):
        tax_adjuster = Mock(spec=TaxAdjuster)
        machine = OrderStateMachine(tax_adjuster=tax_adjuster)
        drive_to(machine, cart, OrderState.DELIVERY)
        tax_adjuster.adjust.assert_called_once_with(cart, cart.line_items)

    def test_existing_shipments_taxed_again(self, cart):
        tax_adjuster = Mock(spec=TaxAdjuster)
        machine = OrderStateMachine(tax_adjuster=tax_adjuster)
        assert machine.next(cart)
        cart.shipments.append(Shipment(order=cart))

        assert machine.next(cart)
        assert tax_adjuster.adjust.call_count == 2

    def test_tax_rate_adjuster(self, cart):
        machine = OrderStateMachine(tax_adjuster=TaxRateAdjuster([Decimal("10")]))
        drive_to(machine, cart, OrderState.DELIVERY)
        assert cart.line_items[0].additional_tax_total == Decimal("2.00")
        assert cart.total == Decimal("22.00")

    def test_effect_error_rolls_back_transition(self, cart):
        tax_adjuster = Mock(spec=TaxAdjuster)
        tax_adjuster.adjust.side_effect = RuntimeError("tax service down")
        machine = OrderStateMachine(tax_adjuster=tax_adjuster)
        assert machine.next(cart)

        with pytest.raises(RuntimeError):
            machine.next(cart)

        assert cart.state == OrderState.ADDRESS
        assert cart.shipments == []
        assert len(cart.state_changes) == 1


class TestCancel:
    @pytest.mark.parametrize(
        "shipment_state,expected",
        [
            (OrderShipmentState.PENDING, True),
            (OrderShipmentState.BACKORDER, True),
            (OrderShipmentState.READY, True),
            (OrderShipmentState.PARTIAL, False),
            (OrderShipmentState.SHIPPED, False),
            (OrderShipmentState.CANCELED, False),
        ],
    )
    def test_can_cancel(self, machine, completed_order, shipment_state, expected):
        completed_order.shipment_state = shipment_state
        assert machine.can_cancel(completed_order) is expected
        assert machine.allow_cancel(completed_order) is expected

    def test_cannot_cancel_incomplete_order(self, machine, cart):
        assert machine.can_cancel(cart) is False
        with pytest.raises(InvalidTransitionError):
            machine.cancel(cart)
        assert cart.state == OrderState.CART

    def test_cancel(self, completed_order, catalog, notifier):
        gateway = Mock(spec=PaymentGateway)
        machine = OrderStateMachine(payment_gateway=gateway, notifier=notifier)

        assert machine.cancel(completed_order)

        assert completed_order.state == OrderState.CANCELED
        assert completed_order.payment_state == OrderPaymentState.VOID
        assert all(s.state == ShipmentState.CANCELED for s in completed_order.shipments)
        assert all(p.state == PaymentState.VOID for p in completed_order.payments)
        assert catalog.blue_32_30.total_on_hand == 5
        gateway.cancel.assert_called_once_with(completed_order.payments[0])
        notifier.send_cancellation.assert_called_once_with(completed_order)

    def test_cancel_twice_raises(self, machine, completed_order):
        machine.cancel(completed_order)
        assert machine.can_cancel(completed_order) is False
        with pytest.raises(InvalidTransitionError):
            machine.cancel(completed_order)

    def test_shipped_order_keeps_payment_state(self, shipped_order, catalog):
        class PermissiveMachine(OrderStateMachine):
            def allow_cancel(self, order):
                return True

        machine = PermissiveMachine()
        assert shipped_order.payment_state == OrderPaymentState.PAID

        machine.cancel(shipped_order)

        assert shipped_order.state == OrderState.CANCELED
        assert shipped_order.payment_state == OrderPaymentState.PAID
        assert shipped_order.shipments[0].state == ShipmentState.SHIPPED
        assert catalog.blue_32_30.total_on_hand == 4

    def test_notification_failure_does_not_undo_cancel(self, completed_order, notifier):
        notifier.send_cancellation.side_effect = RuntimeError("smtp down")
        machine = OrderStateMachine(notifier=notifier)

        assert machine.cancel(completed_order)
        assert completed_order.state == OrderState.CANCELED
        notifier.send_cancellation.assert_called_once()


class TestResume:
    def test_resume_after_cancel(self, machine, completed_order, catalog):
        machine.cancel(completed_order)
        assert machine.can_resume(completed_order)

        assert machine.resume(completed_order)

        assert completed_order.state == OrderState.RESUMED
        assert catalog.blue_32_30.total_on_hand == 4
        assert all(s.state != ShipmentState.CANCELED for s in completed_order.shipments)
        assert completed_order.state_changes[-1].previous_state == "canceled"

    def test_resume_requires_cancel(self, machine, completed_order):
        assert machine.can_resume(completed_order) is False
        with pytest.raises(InvalidTransitionError):
            machine.resume(completed_order)
        assert completed_order.state == OrderState.COMPLETE

    def test_resume_without_recorded_state(self, machine):
        order = Order(state=OrderState.CANCELED)
        assert machine.allow_resume(order) is False
        with pytest.raises(InvalidTransitionError):
            machine.resume(order)

    def test_resumed_order_can_be_canceled_again(self, machine, completed_order):
        machine.cancel(completed_order)
        machine.resume(completed_order)
        assert machine.can_cancel(completed_order)

    def test_resume_leaves_earlier_canceled_shipments_alone(self, machine, completed_order, catalog):
        earlier = Shipment(order=completed_order, state=ShipmentState.CANCELED)
        earlier.add_inventory_unit(InventoryUnit(variant=catalog.blue_32_31))
        completed_order.shipments.append(earlier)

        machine.cancel(completed_order)
        assert catalog.blue_32_31.total_on_hand == 5
        assert earlier.canceled_with_order is False

        machine.resume(completed_order)

        assert earlier.state == ShipmentState.CANCELED
        assert catalog.blue_32_31.total_on_hand == 5
        assert catalog.blue_32_30.total_on_hand == 4
        assert completed_order.shipments[0].state != ShipmentState.CANCELED
        assert completed_order.shipments[0].canceled_with_order is False
