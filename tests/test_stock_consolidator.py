"""Unit tests for stock consolidation across packaging units."""

import pytest
from decimal import Decimal

from palletization.exceptions import IncompatibleUnits, UnitNotFound
from palletization.models import StockLine
from palletization.packaging import ConversionEngine, ConversionRuleCache, StockConsolidator


@pytest.fixture
def consolidator(stock_lines, hierarchy):
    return StockConsolidator(stock_lines, hierarchy)


class TestConsolidate:
    """Test base-unit totals."""

    def test_mixed_units(self, consolidator):
        """Test that masters, boxes and units add up in base units."""
        stock = consolidator.consolidate("P2")

        assert stock.total_base_units == Decimal("355")
        assert stock.locations_count == 2
        assert stock.lines_count == 3

    def test_lines_without_unit_are_base_units(self, consolidator):
        stock = consolidator.consolidate("P1")
        assert stock.total_base_units == Decimal("110")
        assert stock.locations_count == 2

    def test_unknown_product_is_empty(self, consolidator):
        stock = consolidator.consolidate("P404")
        assert stock.total_base_units == 0
        assert stock.locations_count == 0

    def test_invariant_under_rule_cache(self, stock_lines, hierarchy):
        """Test that the conversion rule cache never changes totals."""
        cache = ConversionRuleCache()
        cache.rebuild(hierarchy, "P2")
        cached = StockConsolidator(stock_lines, hierarchy, ConversionEngine(cache=cache))
        uncached = StockConsolidator(stock_lines, hierarchy)

        assert cached.consolidate("P2").total_base_units == uncached.consolidate("P2").total_base_units

        cache.clear()
        assert cached.consolidate("P2").total_base_units == Decimal("355")

    def test_unit_of_other_product(self, hierarchy):
        """Test that a line recorded in another product's unit is rejected."""
        lines = [StockLine(id="X", product_id="P1", location_id="L", quantity=Decimal("1"), unit_id="P2-BX12")]
        with pytest.raises(IncompatibleUnits):
            StockConsolidator(lines, hierarchy).consolidate("P1")

    def test_unknown_unit(self, hierarchy):
        lines = [StockLine(id="X", product_id="P2", location_id="L", quantity=Decimal("1"), unit_id="NOPE")]
        with pytest.raises(UnitNotFound):
            StockConsolidator(lines, hierarchy).consolidate("P2")

    def test_read_only(self, consolidator, stock_lines):
        """Test that consolidation leaves the stock lines untouched."""
        before = list(stock_lines)
        consolidator.consolidate("P2")
        consolidator.plan_picking("P2", Decimal("300"))
        assert stock_lines == before


class TestByPackaging:
    """Test whole-package views of stock."""

    def test_boxes(self, consolidator):
        """Test that 355 base units are 29 boxes of 12 and 7 units."""
        stock = consolidator.by_packaging("P2", "P2-BX12")

        assert stock.available_packages == 29
        assert stock.remaining_base_units == Decimal("7")
        assert stock.total_base_units == Decimal("355")

    def test_invariant_for_every_unit(self, consolidator):
        """Test available * quantity + remaining == total for all units."""
        views = consolidator.by_packaging_all("P2")

        assert [v.unit_id for v in views] == ["P2-UN", "P2-BX12", "P2-MC144"]
        for view in views:
            assert view.available_packages * view.base_unit_quantity + view.remaining_base_units == view.total_base_units

    def test_unit_of_other_product(self, consolidator):
        with pytest.raises(IncompatibleUnits):
            consolidator.by_packaging("P1", "P2-BX12")


class TestAvailability:
    """Test availability checks and picking plans."""

    def test_available(self, consolidator):
        check = consolidator.check_availability("P2", Decimal("300"))
        assert check.is_available
        assert check.shortfall == 0

    def test_shortfall(self, consolidator):
        check = consolidator.check_availability("P2", Decimal("400"))
        assert not check.is_available
        assert check.shortfall == Decimal("45")

    def test_plan_largest_packages_first(self, consolidator):
        """Test that masters are picked before boxes."""
        plan = consolidator.plan_picking("P2", Decimal("300"))

        assert plan.can_fulfill
        assert [(s.unit_id, s.packages) for s in plan.steps] == [("P2-MC144", 2), ("P2-BX12", 1)]
        assert plan.total_planned == Decimal("300")

    def test_plan_short(self, consolidator):
        """Test that a plan beyond stock reports what is missing."""
        plan = consolidator.plan_picking("P2", Decimal("400"))

        assert not plan.can_fulfill
        assert plan.remaining == Decimal("45")
        assert plan.total_planned == Decimal("355")
        assert [(s.unit_id, s.packages) for s in plan.steps] == [
            ("P2-MC144", 2), ("P2-BX12", 5), ("P2-UN", 7)
        ]

    def test_plan_loose_units_only(self, hierarchy):
        """Test that boxes are not planned when only loose units are stocked."""
        consolidator = StockConsolidator(
            [StockLine(id="SL-9", product_id="P2", location_id="LOC-A", quantity=Decimal("30"), unit_id="P2-UN")],
            hierarchy,
        )
        plan = consolidator.plan_picking("P2", Decimal("24"))

        assert plan.can_fulfill
        assert [(s.unit_id, s.packages) for s in plan.steps] == [("P2-UN", 24)]

    def test_plan_masters_not_opened(self, hierarchy):
        """Test that stock held only in masters cannot cover less than a master."""
        consolidator = StockConsolidator(
            [StockLine(id="SL-9", product_id="P2", location_id="LOC-A", quantity=Decimal("1"), unit_id="P2-MC144")],
            hierarchy,
        )
        plan = consolidator.plan_picking("P2", Decimal("24"))

        assert not plan.can_fulfill
        assert plan.steps == []

    def test_packages_by_unit(self, consolidator, stock_lines, hierarchy):
        recorded = consolidator.packages_by_unit("P2")
        assert recorded == {"P2-MC144": Decimal("2"), "P2-BX12": Decimal("5"), "P2-UN": Decimal("7")}

        loose = StockConsolidator(stock_lines[:1], hierarchy).packages_by_unit("P1")
        assert loose == {"P1-UN": Decimal("60")}


class TestSummaryFrame:
    """Test the per-location stock table."""

    def test_per_location(self, consolidator):
        df = consolidator.summary_frame("P2")

        assert list(df.columns) == ["location_id", "lines", "base_units"]
        assert list(df["location_id"]) == ["LOC-A", "LOC-C"]
        assert list(df["lines"]) == [1, 2]
        assert list(df["base_units"]) == [Decimal("288"), Decimal("67")]

    def test_empty(self, consolidator):
        df = consolidator.summary_frame("P404")
        assert df.empty
