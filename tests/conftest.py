"""Pytest fixtures for commerce core tests."""

from datetime import timedelta
from types import SimpleNamespace

import pytest

from core.domain import utcnow
from use_cases.commerce.domain.models import (
    InventoryUnitState,
    OptionType,
    OptionValue,
    Order,
    OrderState,
    Product,
    ReturnAuthorization,
    ReturnItem,
    ShipmentState,
    StockItem,
    Variant,
)
from use_cases.commerce.domain.state_machine import OrderStateMachine
from use_cases.commerce.store import RecordStore


@pytest.fixture
def catalog():
    """Jeans in a few color / waist / inseam combinations, plus a shirt."""
    color = OptionType(name="color", presentation="Color")
    waist = OptionType(name="waist", presentation="Waist")
    inseam = OptionType(name="inseam", presentation="Inseam")
    jeans = Product(name="Jeans", option_types=[color, waist, inseam])

    blue = OptionValue(name="blue", option_type=color, presentation="Blue")
    red = OptionValue(name="red", option_type=color, presentation="Red")
    waist_32 = OptionValue(name=32, option_type=waist)
    waist_34 = OptionValue(name=34, option_type=waist)
    inseam_30 = OptionValue(name=30, option_type=inseam)
    inseam_31 = OptionValue(name=31, option_type=inseam)

    def jeans_variant(sku, *option_values):
        return Variant(
            product=jeans,
            option_values=list(option_values),
            sku=sku,
            price="20.00",
            stock_items=[StockItem(count_on_hand=5)],
        )

    master = Variant(product=jeans, sku="JEANS", price="20.00", is_master=True)
    blue_32_30 = jeans_variant("BLUE-32-30", blue, waist_32, inseam_30)
    blue_32_31 = jeans_variant("BLUE-32-31", blue, waist_32, inseam_31)
    red_32_30 = jeans_variant("RED-32-30", red, waist_32, inseam_30)
    blue_34_30 = jeans_variant("BLUE-34-30", blue, waist_34, inseam_30)

    size = OptionType(name="size")
    shirt = Product(name="Shirt", option_types=[size])
    shirt_medium = Variant(
        product=shirt,
        option_values=[OptionValue(name="M", option_type=size)],
        sku="SHIRT-M",
        price="15.00",
        stock_items=[StockItem(count_on_hand=5)],
    )

    return SimpleNamespace(
        jeans=jeans,
        shirt=shirt,
        master=master,
        blue_32_30=blue_32_30,
        blue_32_31=blue_32_31,
        red_32_30=red_32_30,
        blue_34_30=blue_34_30,
        shirt_medium=shirt_medium,
    )


@pytest.fixture
def machine():
    return OrderStateMachine()


def checkout(machine, order):
    """Drive an order to complete, paying its full total at the payment step."""
    while machine.next(order):
        if order.state == OrderState.PAYMENT:
            order.add_payment(amount=order.total)
    return order


@pytest.fixture(name="checkout")
def checkout_fixture():
    return checkout


@pytest.fixture
def completed_order(catalog, machine):
    """A completed, paid order for one pair of blue 32/30 jeans."""
    order = Order(number="R000000001", email="jane@example.com")
    order.add_line_item(catalog.blue_32_30)
    return checkout(machine, order)


@pytest.fixture
def shipped_order(completed_order, machine):
    """The completed order after its shipment left the warehouse."""
    for shipment in completed_order.shipments:
        shipment.state = ShipmentState.SHIPPED
        shipment.shipped_at = utcnow()
        for unit in shipment.inventory_units:
            unit.state = InventoryUnitState.SHIPPED
    machine.updater.execute(completed_order)
    return completed_order


@pytest.fixture
def make_return_item(shipped_order, catalog):
    """Build return items against the shipped order's first unit."""

    def _make(
        exchange_variant=None,
        with_rma=True,
        completed_days_ago=None,
        pre_tax_amount="20.00",
        additional_tax_total="0",
    ):
        if completed_days_ago is not None:
            shipped_order.completed_at = utcnow() - timedelta(days=completed_days_ago)
        authorization = ReturnAuthorization(order=shipped_order) if with_rma else None
        return ReturnItem(
            inventory_unit=shipped_order.inventory_units[0],
            return_authorization=authorization,
            exchange_variant=exchange_variant,
            pre_tax_amount=pre_tax_amount,
            additional_tax_total=additional_tax_total,
        )

    return _make


@pytest.fixture
def store():
    return RecordStore()
