"""
FastAPI Application for the Commerce Core.

Exposes the order lifecycle events, exchange variant lookup, return item
validation and exchanges over HTTP. Authentication is handled upstream.
"""

import logging
from contextlib import asynccontextmanager
from typing import Callable, Dict, List, Optional

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from config import settings
from core.domain import errors_by_field
from core.exceptions import (
    CommerceError,
    ExchangeError,
    InvalidTransitionError,
    RecordNotFoundError,
)
from use_cases.commerce import (
    AcceptanceStatus,
    CommerceConfiguration,
    Exchange,
    Order,
    OrderStateMachine,
    RecordStore,
    get_record_store,
    seed_store,
)

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

logging.getLogger("httpx").setLevel(logging.WARNING)


# Receives every unhandled exception together with the request that raised it
ErrorNotifier = Callable[[Exception, Request], None]

ERROR_STATUS_CODES = {
    RecordNotFoundError: 404,
    InvalidTransitionError: 422,
    ExchangeError: 422,
}

ERROR_CODES = {
    RecordNotFoundError: "not_found",
    InvalidTransitionError: "invalid_transition",
    ExchangeError: "exchange_failed",
}


def log_error_notifier(exc: Exception, request: Request) -> None:
    """Default error notifier: log the failure with its traceback."""
    logger.error(
        f"Unhandled exception on {request.method} {request.url.path}: {exc!s}",
        exc_info=exc,
    )


# =============================================================================
# SCHEMAS
# =============================================================================

class OrderResponse(BaseModel):
    number: str
    state: str
    payment_state: Optional[str] = None
    shipment_state: Optional[str] = None
    total: str
    transitioned: bool = False

    @classmethod
    def from_order(cls, order: Order, transitioned: bool = False) -> "OrderResponse":
        return cls(
            number=order.number,
            state=order.state.value,
            payment_state=order.payment_state.value if order.payment_state else None,
            shipment_state=order.shipment_state.value if order.shipment_state else None,
            total=str(order.display_total),
            transitioned=transitioned,
        )


class VariantSummary(BaseModel):
    id: str
    sku: str
    options_text: str
    in_stock: bool


class ExchangeVariantsResponse(BaseModel):
    variant_id: str
    variants: List[VariantSummary]


class ReturnItemValidationResponse(BaseModel):
    return_item_id: str
    acceptance_status: str
    reason: str
    errors: Dict[str, str] = Field(default_factory=dict)


class ProductPropertyRequest(BaseModel):
    property_name: str
    value: str = ""


class ProductPropertyResponse(BaseModel):
    id: str
    product_id: str
    property_name: str
    value: str
    position: int


class ExchangeRequest(BaseModel):
    return_item_ids: List[str] = Field(..., min_length=1)


class ExchangeResponse(BaseModel):
    order_number: str
    shipment_number: str
    shipment_state: str
    description: str
    display_amount: str
    inventory_unit_ids: List[str]


# =============================================================================
# APPLICATION
# =============================================================================

def create_app(
    store: Optional[RecordStore] = None,
    machine: Optional[OrderStateMachine] = None,
    error_notifier: Optional[ErrorNotifier] = None,
    configuration: Optional[CommerceConfiguration] = None,
    seed_sample_data: Optional[bool] = None,
) -> FastAPI:
    """
    Build the API application.

    Args:
        store: Record store; defaults to the process-wide store
        machine: Order state machine; defaults to one built from configuration
        error_notifier: Called once per unhandled exception
        configuration: Commerce policy; defaults to one built from settings
        seed_sample_data: Load sample records at startup (defaults to settings)
    """
    configuration = configuration or CommerceConfiguration.from_settings(settings)
    store = store if store is not None else get_record_store()
    machine = machine or configuration.build_state_machine()
    seed = settings.seed_sample_data if seed_sample_data is None else seed_sample_data

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager - handles startup and shutdown."""
        logger.info("Starting Commerce Core Application...")
        with store.transaction():
            if seed and not store.orders.all():
                seed_store(store, machine, currency=configuration.currency)
        yield
        logger.info("Shutting down...")

    app = FastAPI(
        title="Commerce Core",
        description="Order lifecycle, returns and exchanges",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/api/docs",
        redoc_url="/api/redoc"
    )
    app.state.store = store
    app.state.machine = machine
    app.state.configuration = configuration
    app.state.error_notifier = error_notifier or log_error_notifier

    register_exception_handlers(app)
    register_routes(app)
    return app


def register_exception_handlers(app: FastAPI) -> None:
    """Map domain errors to structured 4xx responses and everything else to 500."""

    @app.exception_handler(CommerceError)
    async def commerce_error_handler(request: Request, exc: CommerceError) -> JSONResponse:
        for error_class, status_code in ERROR_STATUS_CODES.items():
            if isinstance(exc, error_class):
                return JSONResponse(
                    status_code=status_code,
                    content={"error": str(exc), "code": ERROR_CODES[error_class]},
                )
        return await unhandled_error_handler(request, exc)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        notifier = request.app.state.error_notifier
        try:
            notifier(exc, request)
        except Exception as notify_error:
            logger.error(f"Error notifier failed: {notify_error}", exc_info=True)

        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "code": "internal_error"},
        )


def register_routes(app: FastAPI) -> None:

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        store: RecordStore = app.state.store
        return {
            "status": "healthy",
            "version": "1.0.0",
            "orders": len(store.orders.all()),
            "products": len(store.products.all()),
        }

    # =========================================================================
    # ORDER LIFECYCLE
    # =========================================================================

    @app.post("/api/orders/{number}/next", response_model=OrderResponse)
    def advance_order(number: str):
        """Advance an order one step; 422 when it cannot move."""
        store: RecordStore = app.state.store
        with store.transaction():
            order = store.find_order(number)
            app.state.machine.next_or_raise(order)
            return OrderResponse.from_order(order, transitioned=True)

    @app.post("/api/orders/{number}/cancel", response_model=OrderResponse)
    def cancel_order(number: str):
        store: RecordStore = app.state.store
        with store.transaction():
            order = store.find_order(number)
            app.state.machine.cancel(order)
            return OrderResponse.from_order(order, transitioned=True)

    @app.post("/api/orders/{number}/resume", response_model=OrderResponse)
    def resume_order(number: str):
        store: RecordStore = app.state.store
        with store.transaction():
            order = store.find_order(number)
            app.state.machine.resume(order)
            return OrderResponse.from_order(order, transitioned=True)

    # =========================================================================
    # CATALOG
    # =========================================================================

    @app.post("/api/products/{product_id}/properties", response_model=ProductPropertyResponse, status_code=201)
    def add_product_property(product_id: str, request: ProductPropertyRequest):
        store: RecordStore = app.state.store
        with store.transaction():
            product = store.products.get(product_id)
            product_property = store.build_product_property(product, request.property_name, request.value)
            errors = store.save_product_property(product_property)
        if errors:
            return JSONResponse(
                status_code=422,
                content={
                    "error": "Validation failed",
                    "code": "validation_failed",
                    "errors": errors_by_field(errors),
                },
            )
        return ProductPropertyResponse(
            id=product_property.id,
            product_id=product.id,
            property_name=product_property.property_name,
            value=product_property.value,
            position=product_property.position,
        )

    # =========================================================================
    # RETURNS & EXCHANGES
    # =========================================================================

    @app.get("/api/variants/{variant_id}/exchange_variants", response_model=ExchangeVariantsResponse)
    def exchange_variants(variant_id: str):
        """List the variants a returned variant may be exchanged for."""
        variant = app.state.store.variants.get(variant_id)
        strategy = app.state.configuration.exchange_variant_eligibility
        return ExchangeVariantsResponse(
            variant_id=variant.id,
            variants=[
                VariantSummary(
                    id=candidate.id,
                    sku=candidate.sku,
                    options_text=candidate.options_text,
                    in_stock=candidate.can_supply(1),
                )
                for candidate in strategy.eligible_variants(variant)
            ],
        )

    @app.post("/api/return_items/{return_item_id}/validate", response_model=ReturnItemValidationResponse)
    def validate_return_item(return_item_id: str):
        """Run the eligibility chain and record the acceptance outcome."""
        store: RecordStore = app.state.store
        with store.transaction():
            return_item = store.return_items.get(return_item_id)
            decision = app.state.configuration.return_item_acceptance().execute(return_item)
            return ReturnItemValidationResponse(
                return_item_id=return_item.id,
                acceptance_status=return_item.acceptance_status.value,
                reason=decision.reason,
                errors=return_item.acceptance_status_errors,
            )

    @app.post("/api/orders/{number}/exchanges", response_model=ExchangeResponse)
    def create_exchange(number: str, request: ExchangeRequest):
        """Create the exchange shipment for the given return items."""
        store: RecordStore = app.state.store
        with store.transaction():
            order = store.find_order(number)
            return_items = [store.return_items.get(item_id) for item_id in request.return_item_ids]
            acceptance = app.state.configuration.return_item_acceptance()
            for item in return_items:
                if item.order is not order:
                    raise ExchangeError(f"Return item {item.id} does not belong to order {order.number}")
                if item.acceptance_status != AcceptanceStatus.ACCEPTED:
                    acceptance.execute(item)
                if item.acceptance_status != AcceptanceStatus.ACCEPTED:
                    raise ExchangeError(
                        f"Return item {item.id} is {item.acceptance_status.value} and cannot be exchanged"
                    )

            exchange = Exchange(order, return_items, updater=app.state.machine.updater)
            shipment = exchange.perform()
            return ExchangeResponse(
                order_number=order.number,
                shipment_number=shipment.number,
                shipment_state=shipment.state.value,
                description=exchange.description,
                display_amount=str(exchange.display_amount),
                inventory_unit_ids=[unit.id for unit in shipment.inventory_units],
            )


# Create FastAPI app
app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=False,
        log_level=settings.log_level.lower()
    )
