"""
Sample Commerce Data.

Seeds a record store with a small catalog (jeans in several colors, waists
and inseams), a completed and shipped order with an exchange request, and an
open cart. Used by the API at startup when SEED_SAMPLE_DATA is enabled.
"""

import logging

from core.domain import utcnow

from .domain.models import (
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
from .domain.state_machine import OrderStateMachine
from .store import RecordStore

logger = logging.getLogger(__name__)


JEANS_COLORS = ["blue", "black"]
JEANS_WAISTS = [30, 32, 34]
JEANS_INSEAMS = [30, 32]

JEANS_PROPERTIES = {
    "Brand": "Denim Works",
    "Fit": "Slim",
    "Material": "98% cotton, 2% elastane",
}


def build_jeans(currency_price: str = "59.00", stock: int = 10) -> Product:
    color = OptionType(name="color", presentation="Color")
    waist = OptionType(name="waist", presentation="Waist")
    inseam = OptionType(name="inseam", presentation="Inseam")
    product = Product(name="Slim Fit Jeans", option_types=[color, waist, inseam])

    colors = [OptionValue(name=name, option_type=color, presentation=name.title()) for name in JEANS_COLORS]
    waists = [OptionValue(name=size, option_type=waist) for size in JEANS_WAISTS]
    inseams = [OptionValue(name=size, option_type=inseam) for size in JEANS_INSEAMS]

    Variant(product=product, sku="JEANS-MASTER", price=currency_price, is_master=True)
    for color_value in colors:
        for waist_value in waists:
            for inseam_value in inseams:
                Variant(
                    product=product,
                    option_values=[color_value, waist_value, inseam_value],
                    sku=f"JEANS-{color_value.name.upper()}-{waist_value.name}-{inseam_value.name}",
                    price=currency_price,
                    stock_items=[StockItem(count_on_hand=stock)],
                )
    return product


def seed_store(store: RecordStore, machine: OrderStateMachine, currency: str = "USD") -> None:
    """Load the sample catalog and orders into the store."""
    jeans = store.save_product(build_jeans())
    for name, value in JEANS_PROPERTIES.items():
        store.save_product_property(store.build_product_property(jeans, name, value))

    variants = {variant.sku: variant for variant in jeans.variants}

    # A completed order whose jeans shipped and are being exchanged
    shipped = Order(number="R100000001", email="jane.smith@example.com", currency=currency)
    shipped.add_line_item(variants["JEANS-BLUE-32-30"])
    _checkout(machine, shipped)
    for shipment in shipped.shipments:
        shipment.state = ShipmentState.SHIPPED
        shipment.shipped_at = utcnow()
        for unit in shipment.inventory_units:
            unit.state = InventoryUnitState.SHIPPED
    machine.updater.execute(shipped)
    store.orders.save(shipped)

    authorization = ReturnAuthorization(order=shipped, memo="Customer wants a longer inseam")
    store.return_items.save(ReturnItem(
        inventory_unit=shipped.inventory_units[0],
        return_authorization=authorization,
        exchange_variant=variants["JEANS-BLUE-32-32"],
        pre_tax_amount=shipped.line_items[0].price,
        id="RI-SAMPLE01",
    ))

    # An open cart
    cart = Order(number="R100000002", email="john.doe@example.com", currency=currency)
    cart.add_line_item(variants["JEANS-BLACK-34-32"], quantity=2)
    machine.updater.execute(cart)
    store.orders.save(cart)

    logger.info(
        f"Seeded {len(jeans.variants)} variants, {len(store.orders.all())} orders, "
        f"{len(store.return_items.all())} return items"
    )


def _checkout(machine: OrderStateMachine, order: Order) -> None:
    """Drive an order to complete, paying the full total once it is known."""
    while machine.next(order):
        if order.state == OrderState.PAYMENT:
            order.add_payment(amount=order.total)
