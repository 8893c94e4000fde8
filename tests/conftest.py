"""Pytest configuration and shared fixtures."""

import pytest
from datetime import date
from decimal import Decimal

from palletization.models import (
    Dimensions,
    Product,
    PackagingUnitSpec,
    Pallet,
    StockLine,
    CompositionLine,
    CompositionRequest,
)
from palletization.packaging import PackagingHierarchy
from palletization.composition import (
    CompositionEngine,
    CompositionLifecycleManager,
    InMemoryInventory,
)


@pytest.fixture
def organizer_product():
    """Fixture for a heavy boxed product packed as single units (20x30x15cm, 10.5kg)."""
    return Product(
        id="P1",
        name="Caixa Organizadora",
        sku="CX-ORG-001",
        weight=10.5,
        dimensions=Dimensions(width=20, length=30, height=15),
        category="Utilidades",
    )


@pytest.fixture
def screw_product():
    """Fixture for a small product packed in boxes of 12 and master cartons of 144."""
    return Product(
        id="P2",
        name="Parafuso 6mm",
        sku="PF-006",
        weight=0.05,
        dimensions=Dimensions(width=5, length=5, height=10),
    )


@pytest.fixture
def products(organizer_product, screw_product):
    """Fixture for all test products."""
    return [organizer_product, screw_product]


@pytest.fixture
def hierarchy():
    """
    Fixture for a packaging hierarchy.

    P1: base unit only (dimensions come from the product)
    P2: unit (1) -> box of 12 -> master carton of 144
    """
    hierarchy = PackagingHierarchy()
    hierarchy.add_unit("P1", PackagingUnitSpec(
        id="P1-UN", name="Unidade", base_unit_quantity=Decimal("1"), is_base_unit=True,
        barcode="7890000000011",
    ))

    hierarchy.add_unit("P2", PackagingUnitSpec(
        id="P2-UN", name="Unidade", base_unit_quantity=Decimal("1"), is_base_unit=True,
        barcode="7890000000028",
    ))
    hierarchy.add_unit("P2", PackagingUnitSpec(
        id="P2-BX12", name="Caixa 12", base_unit_quantity=Decimal("12"),
        barcode="17890000000025",
        dimensions=Dimensions(width=20, length=15, height=10), weight=0.7,
    ))
    hierarchy.add_unit("P2", PackagingUnitSpec(
        id="P2-MC144", name="Master 144", base_unit_quantity=Decimal("144"),
        barcode="27890000000022",
        dimensions=Dimensions(width=40, length=30, height=30), weight=8.9,
    ))
    hierarchy.set_parent("P2-BX12", "P2-MC144")
    hierarchy.set_parent("P2-UN", "P2-BX12")
    return hierarchy


@pytest.fixture
def pbr_pallet():
    """Fixture for a standard PBR pallet: 120x100x15cm, max 1000kg."""
    return Pallet(id="PBR-1", code="PBR0001", pallet_type="PBR", width=120, length=100, height=15, max_weight=1000)


@pytest.fixture
def small_pallet():
    """Fixture for a small pallet: 80x60cm, max 500kg."""
    return Pallet(id="SM-1", code="SM0001", pallet_type="Meio", width=80, length=60, height=12, max_weight=500)


@pytest.fixture
def euro_pallet():
    """Fixture for a heavy-duty euro pallet: 120x80cm, max 1500kg."""
    return Pallet(id="EUR-1", code="EUR0001", pallet_type="Europeu", width=120, length=80, height=14.4, max_weight=1500)


@pytest.fixture
def pallets(pbr_pallet, small_pallet, euro_pallet):
    """Fixture for all test pallets."""
    return [pbr_pallet, small_pallet, euro_pallet]


@pytest.fixture
def stock_lines():
    """
    Fixture for stock recorded in mixed packaging units.

    P1: 60 + 50 = 110 base units in 2 locations
    P2: 2 masters (288) + 5 boxes (60) + 7 units = 355 base units in 2 locations
    """
    return [
        StockLine(id="SL-1", product_id="P1", location_id="LOC-A", quantity=Decimal("60"),
                  lot="L001", expiry_date=date(2026, 3, 1)),
        StockLine(id="SL-2", product_id="P1", location_id="LOC-B", quantity=Decimal("50"), unit_id="P1-UN"),
        StockLine(id="SL-3", product_id="P2", location_id="LOC-A", quantity=Decimal("2"), unit_id="P2-MC144"),
        StockLine(id="SL-4", product_id="P2", location_id="LOC-C", quantity=Decimal("5"), unit_id="P2-BX12"),
        StockLine(id="SL-5", product_id="P2", location_id="LOC-C", quantity=Decimal("7"), unit_id="P2-UN"),
        StockLine(id="SL-6", product_id="P2", location_id="LOC-B", quantity=Decimal("100"), unit_id="P2-UN",
                  is_active=False),
    ]


@pytest.fixture
def engine(products, hierarchy, pallets):
    """Fixture for a composition engine with default configuration."""
    return CompositionEngine(products, hierarchy, pallets)


@pytest.fixture
def inventory(hierarchy, stock_lines, pallets):
    """Fixture for an in-memory inventory holding the test stock and pallets."""
    return InMemoryInventory(hierarchy, stock_lines, pallets)


@pytest.fixture
def manager(engine, inventory):
    """Fixture for a composition lifecycle manager."""
    return CompositionLifecycleManager(engine, inventory)


@pytest.fixture
def make_request():
    """Factory fixture for single-line composition requests."""
    def _make(product_id="P1", quantity=10, unit_id=None, pallet_id="PBR-1", constraints=None):
        return CompositionRequest(
            lines=[CompositionLine(product_id=product_id, quantity=Decimal(str(quantity)), packaging_unit_id=unit_id)],
            pallet_id=pallet_id,
            constraints=constraints,
        )

    return _make
