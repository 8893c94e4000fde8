"""Unit tests for packaging unit conversion and the conversion rule cache."""

import pytest
from decimal import Decimal
from pydantic import ValidationError

from palletization.config import EngineConfig
from palletization.exceptions import IncompatibleUnits, InvalidHierarchy
from palletization.models import ConversionRule, PackagingUnit
from palletization.packaging import ConversionEngine, ConversionRuleCache


@pytest.fixture
def conversion():
    """Conversion engine with default precision."""
    return ConversionEngine()


@pytest.fixture
def box(hierarchy):
    return hierarchy.get_unit("P2-BX12")


@pytest.fixture
def master(hierarchy):
    return hierarchy.get_unit("P2-MC144")


class TestFactor:
    """Test conversion factors between units."""

    def test_coarse_to_fine(self, conversion, master, box):
        """Test that a master carton holds 12 boxes."""
        assert conversion.factor(master, box) == Decimal("12")

    def test_fine_to_coarse(self, conversion, master, box):
        """Test the inverse factor."""
        assert conversion.factor(box, master) == Decimal("12") / Decimal("144")

    def test_same_unit(self, conversion, box):
        assert conversion.factor(box, box) == Decimal("1")

    def test_units_of_different_products(self, conversion, hierarchy, box):
        """Test that units of two products cannot be converted."""
        with pytest.raises(IncompatibleUnits):
            conversion.factor(hierarchy.get_unit("P1-UN"), box)


class TestConversions:
    """Test conversions to and from base units."""

    def test_to_base_units(self, conversion, box):
        assert conversion.to_base_units(Decimal("3"), box) == Decimal("36")

    def test_from_base_units_exact(self, conversion, box):
        """Test that whole multiples convert without a warning."""
        converted = conversion.from_base_units(Decimal("36"), box)

        assert converted.quantity == Decimal("3")
        assert converted.is_exact
        assert converted.warning is None

    def test_from_base_units_reports_rounding(self, conversion, box):
        """Test that precision loss is reported, not hidden."""
        converted = conversion.from_base_units(Decimal("40"), box)

        assert converted.quantity == Decimal("3.333")
        assert not converted.is_exact
        assert "rounded" in converted.warning

    def test_rounds_half_up(self, conversion, hierarchy):
        """Test ROUND_HALF_UP at the requested precision."""
        master = hierarchy.get_unit("P2-MC144")
        # 18 / 144 = 0.125
        assert conversion.from_base_units(Decimal("18"), master, precision=2).quantity == Decimal("0.13")

    def test_product_precision(self, hierarchy, box, screw_product):
        """Test that a product's own precision is used."""
        product = screw_product.model_copy(update={"quantity_precision": 1})
        conversion = ConversionEngine(products={"P2": product})

        assert conversion.from_base_units(Decimal("40"), box).quantity == Decimal("3.3")

    def test_default_precision_from_config(self, box):
        conversion = ConversionEngine(config=EngineConfig(default_quantity_precision=0))
        assert conversion.from_base_units(Decimal("40"), box).quantity == Decimal("3")

    @pytest.mark.parametrize("quantity", ["1", "2.5", "0.125", "7", "1000"])
    @pytest.mark.parametrize("unit_id", ["P2-UN", "P2-BX12", "P2-MC144"])
    def test_round_trip(self, conversion, hierarchy, quantity, unit_id):
        """Test that unit -> base -> unit returns the original quantity."""
        unit = hierarchy.get_unit(unit_id)
        base = conversion.to_base_units(Decimal(quantity), unit)
        back = conversion.from_base_units(base, unit)

        assert back.quantity == Decimal(quantity)
        assert back.is_exact

    def test_convert_between_units(self, conversion, master, box):
        converted = conversion.convert(Decimal("2"), master, box)
        assert converted.quantity == Decimal("24")
        assert converted.unit_id == "P2-BX12"

    def test_whole_packages(self, conversion, box):
        """Test splitting into packages and remainder."""
        assert conversion.whole_packages(Decimal("40"), box) == (3, Decimal("4"))

    def test_whole_packages_negative(self, conversion, box):
        with pytest.raises(ValueError):
            conversion.whole_packages(Decimal("-1"), box)

    def test_zero_quantity_unit_fails_fast(self, conversion):
        """Test that a corrupted unit with zero base units is never divided by."""
        corrupted = PackagingUnit.model_construct(
            id="BAD", product_id="P2", name="Bad", base_unit_quantity=Decimal("0"),
            is_base_unit=False, parent_unit_id=None, level=2, barcode=None,
            dimensions=None, weight=None, is_active=True,
        )
        with pytest.raises(InvalidHierarchy):
            conversion.whole_packages(Decimal("10"), corrupted)
        with pytest.raises(InvalidHierarchy):
            conversion.from_base_units(Decimal("10"), corrupted)


class TestConversionRuleCache:
    """Test the derived conversion rule cache."""

    def test_rebuild_matches_live_factors(self, hierarchy, conversion):
        """Test that every cached factor equals the computed one."""
        cache = ConversionRuleCache()
        count = cache.rebuild(hierarchy, "P2")

        assert count == 6
        for rule in cache.rules("P2"):
            live = conversion.factor(hierarchy.get_unit(rule.from_unit_id), hierarchy.get_unit(rule.to_unit_id))
            assert rule.factor == live

    def test_no_self_rules(self, hierarchy):
        cache = ConversionRuleCache()
        cache.rebuild(hierarchy, "P2")
        assert cache.get("P2-BX12", "P2-BX12") is None

    def test_self_rule_rejected(self):
        """Test that a rule from a unit to itself is invalid."""
        with pytest.raises(ValidationError):
            ConversionRule(from_unit_id="A", to_unit_id="A", factor=Decimal("1"))

    def test_engine_uses_cache(self, hierarchy, master, box):
        """Test that cached and uncached engines agree."""
        cache = ConversionRuleCache()
        cache.rebuild(hierarchy, "P2")
        cached = ConversionEngine(cache=cache)

        assert cached.factor(master, box) == ConversionEngine().factor(master, box)

    def test_drop_and_clear(self, hierarchy):
        """Test that the cache can be dropped per product or entirely."""
        cache = ConversionRuleCache()
        cache.rebuild(hierarchy, "P1")
        cache.rebuild(hierarchy, "P2")
        assert len(cache) == 6

        cache.drop("P2")
        assert len(cache) == 0
        assert cache.rules("P2") == []

        cache.rebuild(hierarchy, "P2")
        cache.clear()
        assert cache.get("P2-MC144", "P2-BX12") is None
