"""
Configuration module for the Commerce Core service.
Loads settings from environment variables and an optional .env file.

List and mapping settings are read as JSON, e.g.
    OPTION_TYPE_RESTRICTIONS='["color", "waist"]'
    SHIPPING_TIERS='{"100": 15, "200": 20}'
"""

from decimal import Decimal
from typing import Dict, List, Optional

from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application Configuration
    app_host: str = Field(
        default="0.0.0.0",
        alias="APP_HOST",
        description="Host to bind the application"
    )
    app_port: int = Field(
        default=8000,
        alias="APP_PORT",
        description="Port to bind the application"
    )
    seed_sample_data: bool = Field(
        default=True,
        alias="SEED_SAMPLE_DATA",
        description="Load the sample catalog and orders at startup"
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        alias="LOG_LEVEL",
        description="Logging level"
    )

    # Money
    currency: str = Field(
        default="USD",
        alias="CURRENCY",
        description="ISO currency code for new orders and displayed amounts"
    )

    # Returns Configuration
    return_eligibility_number_of_days: int = Field(
        default=365,
        alias="RETURN_ELIGIBILITY_NUMBER_OF_DAYS",
        description="Days after order completion during which items may be returned"
    )
    eligibility_validators: List[str] = Field(
        default=["time_since_purchase", "rma_required"],
        alias="ELIGIBILITY_VALIDATORS",
        description="Ordered eligibility validator names applied to return items"
    )
    exchange_variant_eligibility: str = Field(
        default="same_option_value",
        alias="EXCHANGE_VARIANT_ELIGIBILITY",
        description="Strategy selecting exchange variants (same_product, same_option_value)"
    )
    option_type_restrictions: List[str] = Field(
        default=[],
        alias="OPTION_TYPE_RESTRICTIONS",
        description="Option types an exchange variant must share with the returned variant"
    )

    # Checkout Configuration
    shipping_calculator: str = Field(
        default="flat_rate",
        alias="SHIPPING_CALCULATOR",
        description="Shipping cost calculator (flat_rate, tiered_flat_rate)"
    )
    shipping_flat_rate: Decimal = Field(
        default=Decimal("5.00"),
        alias="SHIPPING_FLAT_RATE",
        description="Flat rate, or base amount for tiered shipping"
    )
    shipping_tiers: Dict[str, Decimal] = Field(
        default={},
        alias="SHIPPING_TIERS",
        description="Threshold to rate mapping for tiered shipping"
    )
    free_shipping_threshold: Optional[Decimal] = Field(
        default=None,
        alias="FREE_SHIPPING_THRESHOLD",
        description="Item total at which shipping becomes free (unset disables)"
    )
    tax_rates: List[Decimal] = Field(
        default=[],
        alias="TAX_RATES",
        description="Additional tax percentages applied to line items and shipments"
    )

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


# Global settings instance
settings = Settings()
