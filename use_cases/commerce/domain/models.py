"""
Commerce Entities.

Plain in-memory entities for the catalog, orders, shipments, payments and
returns. Entities compare by identity: two variants with the same option
values are still two different records.

Relationships are held as direct object references. Child records that
belong to a parent register themselves on the parent when constructed
(a Variant appears in its Product's variants, a LineItem built through
Order.add_line_item appears in the order's line_items).
"""

import builtins
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Any, Dict, List, Optional

from core.domain import utcnow


def new_id(prefix: str) -> str:
    """Generate a short record identifier, e.g. ``V-1A2B3C4D``."""
    return f"{prefix}-{uuid.uuid4().hex[:8].upper()}"


def to_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


# =============================================================================
# STATES
# =============================================================================

class OrderState(Enum):
    """Order lifecycle states."""
    CART = "cart"
    ADDRESS = "address"
    DELIVERY = "delivery"
    PAYMENT = "payment"
    CONFIRM = "confirm"
    COMPLETE = "complete"
    CANCELED = "canceled"
    RESUMED = "resumed"


class ShipmentState(Enum):
    """States of a single shipment."""
    PENDING = "pending"
    READY = "ready"
    SHIPPED = "shipped"
    CANCELED = "canceled"


class OrderShipmentState(Enum):
    """Order-level roll-up of its shipments' states."""
    PENDING = "pending"
    BACKORDER = "backorder"
    READY = "ready"
    PARTIAL = "partial"
    SHIPPED = "shipped"
    CANCELED = "canceled"


class PaymentState(Enum):
    """States of a single payment."""
    CHECKOUT = "checkout"
    PROCESSING = "processing"
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    VOID = "void"
    INVALID = "invalid"


class OrderPaymentState(Enum):
    """Order-level roll-up of its payments."""
    BALANCE_DUE = "balance_due"
    PAID = "paid"
    CREDIT_OWED = "credit_owed"
    FAILED = "failed"
    VOID = "void"


class InventoryUnitState(Enum):
    ON_HAND = "on_hand"
    BACKORDERED = "backordered"
    SHIPPED = "shipped"
    RETURNED = "returned"


class AcceptanceStatus(Enum):
    """Outcome of running the eligibility chain against a return item."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    MANUAL_INTERVENTION_REQUIRED = "manual_intervention_required"


# =============================================================================
# MONEY
# =============================================================================

CURRENCY_SYMBOLS = {
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "JPY": "¥",
}

CENTS = Decimal("0.01")


@dataclass(frozen=True)
class Money:
    """A rounded monetary amount in a single currency."""
    amount: Decimal = Decimal("0")
    currency: str = "USD"

    def __post_init__(self):
        rounded = to_decimal(self.amount).quantize(CENTS, rounding=ROUND_HALF_UP)
        object.__setattr__(self, "amount", rounded)

    def __add__(self, other: "Money") -> "Money":
        if other.currency != self.currency:
            raise ValueError(f"Cannot add {other.currency} to {self.currency}")
        return Money(self.amount + other.amount, self.currency)

    def __str__(self) -> str:
        symbol = CURRENCY_SYMBOLS.get(self.currency, f"{self.currency} ")
        sign = "-" if self.amount < 0 else ""
        return f"{sign}{symbol}{abs(self.amount):,.2f}"


# =============================================================================
# CATALOG
# =============================================================================

@dataclass(eq=False)
class OptionType:
    name: str
    presentation: str = ""
    id: str = field(default_factory=lambda: new_id("OT"))

    def __post_init__(self):
        if not self.presentation:
            self.presentation = self.name.title()


@dataclass(eq=False)
class OptionValue:
    name: Any
    option_type: OptionType
    presentation: str = ""
    id: str = field(default_factory=lambda: new_id("OV"))

    def __post_init__(self):
        self.name = str(self.name)
        if not self.presentation:
            self.presentation = self.name


@dataclass(eq=False)
class Property:
    name: str
    presentation: str = ""
    id: str = field(default_factory=lambda: new_id("PR"))

    def __post_init__(self):
        if not self.presentation:
            self.presentation = self.name


@dataclass(eq=False)
class Product:
    name: str
    option_types: List[OptionType] = field(default_factory=list)
    variants: List["Variant"] = field(default_factory=list)
    product_properties: List["ProductProperty"] = field(default_factory=list)
    id: str = field(default_factory=lambda: new_id("P"))


@dataclass(eq=False)
class StockItem:
    """Stock of one variant at one stock location."""
    count_on_hand: int = 0
    backorderable: bool = False
    id: str = field(default_factory=lambda: new_id("SI"))

    def adjust_count_on_hand(self, delta: int) -> None:
        self.count_on_hand += delta


@dataclass(eq=False)
class Variant:
    product: Product
    option_values: List[OptionValue] = field(default_factory=list)
    sku: str = ""
    price: Decimal = Decimal("0")
    is_master: bool = False
    stock_items: List[StockItem] = field(default_factory=list)
    id: str = field(default_factory=lambda: new_id("V"))

    def __post_init__(self):
        self.price = to_decimal(self.price)
        if not self.stock_items:
            self.stock_items.append(StockItem())
        if self not in self.product.variants:
            self.product.variants.append(self)

    @property
    def options_text(self) -> str:
        """Option values as display text, e.g. ``Color: Blue, Waist: 32``."""
        order = {ot.id: index for index, ot in enumerate(self.product.option_types)}
        values = sorted(
            self.option_values,
            key=lambda ov: order.get(ov.option_type.id, len(order)),
        )
        return ", ".join(f"{ov.option_type.presentation}: {ov.presentation}" for ov in values)

    def option_value_for(self, option_type_name: str) -> Optional[OptionValue]:
        for option_value in self.option_values:
            if option_value.option_type.name == option_type_name:
                return option_value
        return None

    @property
    def stock_item(self) -> StockItem:
        return self.stock_items[0]

    def stock_item_for(self, quantity: int = 1) -> StockItem:
        """Stock item to take units from: one holding enough stock, else one that backorders."""
        for item in self.stock_items:
            if item.count_on_hand >= quantity:
                return item
        for item in self.stock_items:
            if item.backorderable:
                return item
        return self.stock_item

    @property
    def total_on_hand(self) -> int:
        return sum(item.count_on_hand for item in self.stock_items)

    @property
    def backorderable(self) -> bool:
        return any(item.backorderable for item in self.stock_items)

    def can_supply(self, quantity: int) -> bool:
        return self.backorderable or self.total_on_hand >= quantity


@dataclass(eq=False)
class ProductProperty:
    product: Product
    property: Optional[Property] = None
    value: str = ""
    position: int = 0
    id: str = field(default_factory=lambda: new_id("PP"))

    # The `property` field shadows the builtin inside this class body
    @builtins.property
    def property_name(self) -> Optional[str]:
        return self.property.name if self.property else None


# =============================================================================
# ORDERS
# =============================================================================

@dataclass(eq=False)
class LineItem:
    variant: Variant
    quantity: int = 1
    price: Decimal = Decimal("0")
    order: Optional["Order"] = None
    additional_tax_total: Decimal = Decimal("0")
    id: str = field(default_factory=lambda: new_id("LI"))

    def __post_init__(self):
        self.price = to_decimal(self.price)

    @property
    def amount(self) -> Decimal:
        return self.price * self.quantity

    @property
    def taxable_amount(self) -> Decimal:
        return self.amount


@dataclass(eq=False)
class InventoryUnit:
    """One physical unit of a variant allocated to a shipment."""
    variant: Variant
    line_item: Optional[LineItem] = None
    shipment: Optional["Shipment"] = None
    state: InventoryUnitState = InventoryUnitState.ON_HAND
    original_return_item: Optional["ReturnItem"] = None
    id: str = field(default_factory=lambda: new_id("IU"))

    @property
    def order(self) -> Optional["Order"]:
        if self.line_item is not None and self.line_item.order is not None:
            return self.line_item.order
        if self.shipment is not None:
            return self.shipment.order
        return None

    @property
    def is_shipped(self) -> bool:
        return self.state == InventoryUnitState.SHIPPED


@dataclass(eq=False)
class Shipment:
    order: Optional["Order"] = None
    number: str = field(default_factory=lambda: new_id("H"))
    state: ShipmentState = ShipmentState.PENDING
    inventory_units: List[InventoryUnit] = field(default_factory=list)
    cost: Decimal = Decimal("0")
    additional_tax_total: Decimal = Decimal("0")
    shipped_at: Optional[datetime] = None
    # Set when the order cancel event canceled this shipment
    canceled_with_order: bool = False
    id: str = field(default_factory=lambda: new_id("S"))

    def add_inventory_unit(self, unit: InventoryUnit) -> InventoryUnit:
        unit.shipment = self
        self.inventory_units.append(unit)
        return unit

    @property
    def is_shipped(self) -> bool:
        return self.state == ShipmentState.SHIPPED

    @property
    def amount(self) -> Decimal:
        """Value of the items in the shipment; the shipping calculator subject."""
        return sum(
            (unit.line_item.price for unit in self.inventory_units if unit.line_item),
            Decimal("0"),
        )

    @property
    def taxable_amount(self) -> Decimal:
        return self.cost


@dataclass(eq=False)
class Payment:
    amount: Decimal = Decimal("0")
    state: PaymentState = PaymentState.CHECKOUT
    order: Optional["Order"] = None
    response_code: Optional[str] = None
    id: str = field(default_factory=lambda: new_id("PM"))

    def __post_init__(self):
        self.amount = to_decimal(self.amount)

    @property
    def is_valid(self) -> bool:
        return self.state not in (PaymentState.FAILED, PaymentState.INVALID)

    @property
    def is_completed(self) -> bool:
        return self.state == PaymentState.COMPLETED

    @property
    def is_unprocessed(self) -> bool:
        return self.state in (PaymentState.CHECKOUT, PaymentState.PENDING)


@dataclass
class StateChange:
    """Audit record of an order lifecycle transition."""
    name: str
    previous_state: Optional[str]
    next_state: str
    created_at: datetime = field(default_factory=utcnow)


@dataclass(eq=False)
class Order:
    """
    Aggregate root for a customer order.

    `state` is only changed by the OrderStateMachine. `payment_state` and
    `shipment_state` are roll-ups maintained by the OrderUpdater.
    """
    number: str = field(default_factory=lambda: new_id("R"))
    email: str = ""
    currency: str = "USD"
    state: OrderState = OrderState.CART
    payment_state: Optional[OrderPaymentState] = None
    shipment_state: Optional[OrderShipmentState] = None
    line_items: List[LineItem] = field(default_factory=list)
    shipments: List[Shipment] = field(default_factory=list)
    payments: List[Payment] = field(default_factory=list)
    state_changes: List[StateChange] = field(default_factory=list)
    item_total: Decimal = Decimal("0")
    shipment_total: Decimal = Decimal("0")
    additional_tax_total: Decimal = Decimal("0")
    promo_total: Decimal = Decimal("0")
    total: Decimal = Decimal("0")
    payment_total: Decimal = Decimal("0")
    completed_at: Optional[datetime] = None
    id: str = field(default_factory=lambda: new_id("O"))

    def add_line_item(self, variant: Variant, quantity: int = 1, price: Any = None) -> LineItem:
        line_item = LineItem(
            variant=variant,
            quantity=quantity,
            price=variant.price if price is None else price,
            order=self,
        )
        self.line_items.append(line_item)
        return line_item

    def add_payment(self, amount: Any, state: PaymentState = PaymentState.CHECKOUT) -> Payment:
        payment = Payment(amount=amount, state=state, order=self)
        self.payments.append(payment)
        return payment

    @property
    def completed(self) -> bool:
        """True once the order has reached `complete` at least once."""
        return self.completed_at is not None

    @property
    def payment_required(self) -> bool:
        return self.total > 0

    @property
    def outstanding_balance(self) -> Decimal:
        return self.total - self.payment_total

    @property
    def inventory_units(self) -> List[InventoryUnit]:
        return [unit for shipment in self.shipments for unit in shipment.inventory_units]

    @property
    def is_backordered(self) -> bool:
        return any(unit.state == InventoryUnitState.BACKORDERED for unit in self.inventory_units)

    @property
    def display_total(self) -> Money:
        return Money(self.total, self.currency)


# =============================================================================
# RETURNS
# =============================================================================

@dataclass(eq=False)
class ReturnAuthorization:
    """An RMA issued against an order."""
    order: Optional[Order] = None
    number: str = field(default_factory=lambda: new_id("RA"))
    memo: str = ""
    id: str = field(default_factory=lambda: new_id("RMA"))


@dataclass(eq=False)
class ReturnItem:
    """One unit being returned, optionally exchanged for another variant."""
    inventory_unit: InventoryUnit
    return_authorization: Optional[ReturnAuthorization] = None
    exchange_variant: Optional[Variant] = None
    pre_tax_amount: Decimal = Decimal("0")
    additional_tax_total: Decimal = Decimal("0")
    acceptance_status: AcceptanceStatus = AcceptanceStatus.PENDING
    acceptance_status_errors: Dict[str, str] = field(default_factory=dict)
    exchange_inventory_unit: Optional[InventoryUnit] = None
    id: str = field(default_factory=lambda: new_id("RI"))

    def __post_init__(self):
        self.pre_tax_amount = to_decimal(self.pre_tax_amount)
        self.additional_tax_total = to_decimal(self.additional_tax_total)

    @property
    def variant(self) -> Variant:
        return self.inventory_unit.variant

    @property
    def order(self) -> Optional[Order]:
        if self.return_authorization is not None and self.return_authorization.order is not None:
            return self.return_authorization.order
        return self.inventory_unit.order

    @property
    def total(self) -> Decimal:
        return self.pre_tax_amount + self.additional_tax_total

    @property
    def is_exchange_requested(self) -> bool:
        return self.exchange_variant is not None

    @property
    def is_exchange_processed(self) -> bool:
        return self.exchange_inventory_unit is not None
