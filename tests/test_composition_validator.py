"""Unit tests for composition constraint validation."""

import pytest
from decimal import Decimal

from palletization.exceptions import InvalidConstraint
from palletization.models import ConstraintOverrides, Dimensions
from palletization.packaging.consolidation import AvailabilityCheck
from palletization.composition import (
    CompositionPacker,
    CompositionValidator,
    PackingItem,
    Severity,
    ViolationType,
)


def make_item(product_id, count, dims=(20, 30, 15), weight=10.5):
    return PackingItem(
        product_id=product_id,
        unit_id=f"{product_id}-UN",
        requested_unit_id=f"{product_id}-UN",
        requested_quantity=Decimal(count),
        base_quantity=Decimal(count),
        count=count,
        base_units_per_item=Decimal("1"),
        dimensions=Dimensions(width=dims[0], length=dims[1], height=dims[2]) if dims else None,
        item_weight=weight,
    )


@pytest.fixture
def validator():
    return CompositionValidator()


@pytest.fixture
def check(validator, pbr_pallet):
    """Pack and validate items on the PBR pallet."""
    def _check(items, overrides=None, availability=()):
        constraints = validator.resolve_constraints(pbr_pallet, overrides)
        packed = CompositionPacker().pack(items, pbr_pallet, constraints.max_height)
        return validator.validate(items, pbr_pallet, packed, constraints, availability)

    return _check


class TestResolveConstraints:
    """Test effective constraint resolution."""

    def test_pallet_limits(self, validator, pbr_pallet):
        """Test limits of a pallet without overrides (150cm default stack)."""
        constraints = validator.resolve_constraints(pbr_pallet)

        assert constraints.max_weight == 1000
        assert constraints.max_height == 150
        assert constraints.max_volume == pytest.approx(1.8)

    def test_tighter_overrides(self, validator, pbr_pallet):
        constraints = validator.resolve_constraints(
            pbr_pallet, ConstraintOverrides(max_weight=800, max_height=100)
        )

        assert constraints.max_weight == 800
        assert constraints.max_height == 100
        assert constraints.max_volume == pytest.approx(1.2)

    @pytest.mark.parametrize("overrides", [
        ConstraintOverrides(max_weight=0),
        ConstraintOverrides(max_height=-5),
        ConstraintOverrides(max_volume=0),
    ])
    def test_non_positive_override(self, validator, pbr_pallet, overrides):
        with pytest.raises(InvalidConstraint):
            validator.resolve_constraints(pbr_pallet, overrides)

    @pytest.mark.parametrize("overrides", [
        ConstraintOverrides(max_weight=1200),
        ConstraintOverrides(max_height=200),
        ConstraintOverrides(max_volume=2.0),
    ])
    def test_override_above_pallet_limit(self, validator, pbr_pallet, overrides):
        """Test that overrides cannot loosen the pallet's own limits."""
        with pytest.raises(InvalidConstraint):
            validator.resolve_constraints(pbr_pallet, overrides)


class TestWeight:
    """Test weight limits."""

    def test_light_load_is_valid(self, check):
        result = check([make_item("P1", 10)])

        assert result.is_valid
        assert result.weight.total == pytest.approx(105)
        assert result.weight.utilization == pytest.approx(0.105)
        assert result.violations == []

    def test_over_limit_is_error(self, check):
        """Test 1050kg on a 1000kg pallet."""
        result = check([make_item("P1", 100)])

        assert not result.is_valid
        errors = [v for v in result.violations if v.severity == Severity.ERROR]
        assert len(errors) == 1
        assert errors[0].type == ViolationType.WEIGHT

    def test_warning_band(self, check):
        """Test that 85% weight utilization warns without invalidating."""
        result = check([make_item("P1", 85, weight=10.0)])

        assert result.is_valid
        assert result.weight.utilization == pytest.approx(0.85)
        warnings = [v for v in result.violations if v.type == ViolationType.WEIGHT]
        assert len(warnings) == 1
        assert warnings[0].severity == Severity.WARNING
        assert any("Weight utilization" in w for w in result.warnings)

    def test_exactly_at_limit_warns(self, check):
        result = check([make_item("P1", 100, weight=10.0)])
        assert result.is_valid
        assert result.violations[0].severity == Severity.WARNING


class TestVolumeAndHeight:
    """Test volume and height limits."""

    def test_volume_and_height_errors(self, check):
        """Test 16 cubes of 50cm: 2.0m³ and 200cm needed."""
        result = check([make_item("CUBE", 16, dims=(50, 50, 50), weight=1.0)])
        types = {v.type for v in result.violations if v.severity == Severity.ERROR}

        assert types == {ViolationType.VOLUME, ViolationType.HEIGHT}
        assert result.volume.total == pytest.approx(2.0)
        assert result.height.total == pytest.approx(200)
        assert "exceed the height limit" in result.products[0].issues[0]

    def test_height_uses_packed_stack(self, check):
        """Test that height is the stacked height, not the sum of item heights."""
        result = check([make_item("P1", 36, weight=1.0)])
        assert result.height.total == pytest.approx(30)

    def test_volume_warning_band(self, check):
        """Test 1.62m³ of 1.8m³ (90%)."""
        result = check([make_item("P1", 180, weight=1.0)])
        volume = [v for v in result.violations if v.type == ViolationType.VOLUME]

        assert result.volume.utilization == pytest.approx(0.9)
        assert volume[0].severity == Severity.WARNING


class TestCompatibility:
    """Test per-line footprint checks."""

    def test_oversized_line(self, check):
        """Test that an item larger than the pallet is a line issue and an error."""
        result = check([make_item("P1", 2), make_item("BIG", 1, dims=(130, 110, 20), weight=5)])
        big = [p for p in result.products if p.product_id == "BIG"][0]
        ok = [p for p in result.products if p.product_id == "P1"][0]

        assert not big.can_fit
        assert big.issues
        assert ok.can_fit
        assert ok.efficiency == 1.0
        compatibility = [v for v in result.violations if v.type == ViolationType.COMPATIBILITY]
        assert compatibility[0].affected_products == ["BIG"]
        assert not result.is_valid

    def test_missing_dimensions(self, check):
        result = check([make_item("NODIM", 3, dims=None, weight=1.0)])

        assert not result.is_valid
        assert result.products[0].can_fit is False
        assert result.violations[0].type == ViolationType.COMPATIBILITY


class TestStockAndWarnings:
    """Test stock shortfalls and plain warnings."""

    def test_stock_shortfall(self, check):
        availability = [AvailabilityCheck(product_id="P1", required=Decimal("10"), available=Decimal("4"))]
        result = check([make_item("P1", 10)], availability=availability)

        assert not result.is_valid
        assert result.violations[0].type == ViolationType.STOCK
        assert "Short 6" in result.products[0].issues[0]

    def test_low_efficiency_warning(self, check):
        result = check([make_item("P1", 10)])
        assert any("Low space efficiency" in w for w in result.warnings)

    def test_stability_warning(self, check):
        result = check([make_item("P1", 80, weight=1.0)])
        assert any("stability" in w for w in result.warnings)
