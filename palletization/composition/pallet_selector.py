"""Pallet selection for requests that do not name a pallet."""

import logging
from typing import Iterable, List

from ..config import DEFAULT_CONFIG, EngineConfig
from ..exceptions import PalletNotFound
from ..models.pallet import Pallet
from .packer import PackingItem

logger = logging.getLogger(__name__)


def pallet_accepts(pallet: Pallet, items: List[PackingItem], config: EngineConfig = DEFAULT_CONFIG) -> bool:
    """Check weight capacity and that every dimensioned item fits the footprint."""
    total_weight = sum(item.total_weight for item in items)
    if total_weight > pallet.max_weight:
        return False
    for item in items:
        if item.dimensions is not None and item.orientation_for(pallet, config.allow_rotation) is None:
            return False
    return True


def select_pallet(
    pallets: Iterable[Pallet],
    items: List[PackingItem],
    config: EngineConfig = DEFAULT_CONFIG
) -> Pallet:
    """
    Pick the lightest-rated available pallet that can carry the items.

    Candidates are available pallets whose max weight covers the total weight
    and whose footprint accepts every item. Ties are broken by smaller
    footprint, then pallet id.

    Args:
        pallets: Pallets to choose from
        items: Normalized packing items
        config: Engine configuration (rotation)

    Returns:
        Selected pallet

    Raises:
        PalletNotFound: If no pallet qualifies
    """
    candidates = [
        pallet for pallet in pallets
        if pallet.is_available() and pallet_accepts(pallet, items, config)
    ]
    if not candidates:
        raise PalletNotFound(
            "No available pallet can carry the requested items",
            {"total_weight": round(sum(item.total_weight for item in items), 3)}
        )

    selected = min(candidates, key=lambda p: (p.max_weight, p.footprint_area, p.id))
    logger.info(f"Selected {selected} out of {len(candidates)} candidate pallets")
    return selected
