"""Centralized constants for the packaging and composition engine.

This module contains the defaults shared by the packaging hierarchy, the
stock consolidator and the composition validator/packer. Centralizing these
values keeps the validator and the packer in agreement about limits.
"""

from decimal import Decimal

# ============================================================================
# PACKAGING CONSTANTS
# ============================================================================

#: Level of the base unit in every packaging hierarchy
BASE_UNIT_LEVEL = 1

#: Quantity of base units contained in the base unit itself
BASE_UNIT_QUANTITY = Decimal("1")

#: Decimal places used when converting out of base units
#: Matches the decimal(10,3) quantity columns of the warehouse schema
DEFAULT_QUANTITY_PRECISION = 3


# ============================================================================
# PALLET CONSTANTS
# ============================================================================

#: Maximum load height above the pallet deck (cm) when a pallet declares none
DEFAULT_MAX_STACK_HEIGHT_CM = 150.0

#: Conversion factor from cm³ to m³
CM3_PER_M3 = 1_000_000


# ============================================================================
# VALIDATION THRESHOLDS (fractions of a limit)
# ============================================================================

#: Utilization at or above this fraction raises a warning (not an error)
WARNING_UTILIZATION = 0.80

#: Packing efficiency below this fraction adds a warning message
LOW_EFFICIENCY_WARNING = 0.60

#: Packing efficiency below this fraction triggers recommendations
RECOMMENDATION_EFFICIENCY = 0.70

#: Weight utilization below this fraction is reported as an underused pallet
UNDERUSED_WEIGHT = 0.50

#: Share of a layer's volume left empty above shorter items that flags the
#: product setting the layer height
VERTICAL_WASTE_THRESHOLD = 0.30

#: Layers above this count add a stability warning
MAX_STABLE_LAYERS = 3


# ============================================================================
# LISTING
# ============================================================================

#: Default page size when listing compositions
DEFAULT_PAGE_SIZE = 20
