"""Tests for building the commerce configuration from settings."""

from decimal import Decimal
from types import SimpleNamespace

import pytest

from config import Settings
from use_cases.commerce.configuration import (
    CommerceConfiguration,
    resolve_eligibility_validators,
    resolve_exchange_variant_eligibility,
    resolve_shipping_calculator,
)
from use_cases.commerce.domain.calculators import FlatRate, TieredFlatRate
from use_cases.commerce.domain.policies import RMARequired, TimeSincePurchase
from use_cases.commerce.domain.variant_eligibility import SameOptionValue, SameProduct


def make_settings(**overrides):
    return Settings(_env_file=None, **overrides)


class TestFromSettings:
    def test_defaults(self):
        configuration = CommerceConfiguration.from_settings(make_settings())
        assert isinstance(configuration.exchange_variant_eligibility, SameOptionValue)
        assert isinstance(configuration.shipping_calculator, FlatRate)
        assert configuration.shipping_calculator.amount == Decimal("5.00")
        assert configuration.currency == "USD"

    def test_return_window_and_chain(self, make_return_item):
        settings = make_settings(
            RETURN_ELIGIBILITY_NUMBER_OF_DAYS=30,
            ELIGIBILITY_VALIDATORS=["time_since_purchase", "rma_required"],
        )
        configuration = CommerceConfiguration.from_settings(settings)
        validator = configuration.eligibility_validator(make_return_item(completed_days_ago=45))

        assert [type(v) for v in validator.validators] == [TimeSincePurchase, RMARequired]
        assert validator.validators[0].return_window_days == 30
        assert not validator.eligible_for_return()

    def test_option_type_restrictions(self, catalog):
        settings = make_settings(OPTION_TYPE_RESTRICTIONS=["color", "waist"])
        configuration = CommerceConfiguration.from_settings(settings)
        strategy = configuration.exchange_variant_eligibility
        assert strategy.eligible_variants(catalog.blue_32_30) == [catalog.blue_32_31]

    def test_tiered_shipping(self):
        settings = make_settings(
            SHIPPING_CALCULATOR="tiered_flat_rate",
            SHIPPING_FLAT_RATE="10",
            SHIPPING_TIERS={"100": 15, "200": 20},
        )
        calculator = CommerceConfiguration.from_settings(settings).shipping_calculator
        assert isinstance(calculator, TieredFlatRate)
        assert calculator.base_amount == Decimal("10")
        assert calculator.compute(SimpleNamespace(amount=Decimal("150"))) == Decimal("15")

    def test_shipping_tier_keys_parsed_from_strings(self):
        settings = make_settings(
            SHIPPING_CALCULATOR="tiered_flat_rate",
            SHIPPING_TIERS={" 100 ": 15, "200.50": 20},
        )
        calculator = resolve_shipping_calculator(settings)
        assert set(calculator.tiers) == {Decimal("100"), Decimal("200.50")}
        assert calculator.compute(SimpleNamespace(amount=Decimal("201"))) == Decimal("20")

    @pytest.mark.parametrize("key", ["abc", "-5", "0", "inf"])
    def test_unparseable_or_non_positive_tier_keys(self, key):
        settings = make_settings(SHIPPING_CALCULATOR="tiered_flat_rate", SHIPPING_TIERS={key: 15})
        with pytest.raises(ValueError):
            resolve_shipping_calculator(settings)

    def test_invalid_shipping_tiers(self):
        settings = make_settings(SHIPPING_CALCULATOR="tiered_flat_rate", SHIPPING_TIERS={"abc": 15})
        with pytest.raises(ValueError):
            CommerceConfiguration.from_settings(settings)

    def test_unknown_shipping_calculator(self):
        with pytest.raises(ValueError):
            CommerceConfiguration.from_settings(make_settings(SHIPPING_CALCULATOR="by_weight"))

    def test_configurations_are_independent(self, make_return_item):
        strict = CommerceConfiguration.from_settings(make_settings(ELIGIBILITY_VALIDATORS=["rma_required"]))
        lenient = CommerceConfiguration.from_settings(make_settings(ELIGIBILITY_VALIDATORS=[]))
        return_item = make_return_item(with_rma=False)

        assert not strict.eligibility_validator(return_item).eligible_for_return()
        assert lenient.eligibility_validator(return_item).eligible_for_return()

    def test_state_machine_uses_configuration(self):
        settings = make_settings(FREE_SHIPPING_THRESHOLD="50", TAX_RATES=["5"])
        machine = CommerceConfiguration.from_settings(settings).build_state_machine()
        assert machine.free_shipping_threshold == Decimal("50")
        assert machine.tax_adjuster.rates == [Decimal("5")]


class TestRegistries:
    def test_unknown_validator(self):
        with pytest.raises(ValueError):
            resolve_eligibility_validators(["always_eligible"])

    def test_unknown_strategy(self):
        with pytest.raises(ValueError):
            resolve_exchange_variant_eligibility("same_color")

    def test_same_product_strategy(self):
        assert isinstance(resolve_exchange_variant_eligibility("same_product"), SameProduct)
