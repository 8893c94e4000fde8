"""Greedy shelf packing of composition items onto a pallet.

Items are sorted largest footprint first and laid left to right along the
pallet width, wrapping to a new row when the width is used up and to a new
layer when the rows reach the pallet length. Layer height is the tallest
item in the layer. The layout is deterministic. Whole layers above the
height limit are counted rather than laid out, so the work per line is
bounded by what fits on the pallet, not by the requested quantity.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional

from ..config import DEFAULT_CONFIG, EngineConfig
from ..models.pallet import Pallet
from ..models.product import Dimensions
from .result_schema import Layout, PlacedItem, Position

logger = logging.getLogger(__name__)

EPSILON = 1e-9


@dataclass
class PackingItem:
    """
    A request line normalized into identical physical items.

    Attributes:
        product_id: Product
        unit_id: Unit of each physical item (the base unit when the
            requested unit has no dimensions)
        requested_unit_id: Unit the line was requested in
        requested_quantity: Quantity in the requested unit
        base_quantity: Requested quantity in base units
        count: Number of physical items
        base_units_per_item: Base units inside one item
        dimensions: Dimensions of one item (None when unknown)
        item_weight: Weight of one item in kg
        sort_order: Position in the request
        notes: Normalization remarks (rounding, fallbacks)
    """
    product_id: str
    unit_id: str
    requested_unit_id: str
    requested_quantity: Decimal
    base_quantity: Decimal
    count: int
    base_units_per_item: Decimal
    dimensions: Optional[Dimensions]
    item_weight: float
    sort_order: int = 0
    notes: List[str] = field(default_factory=list)

    @property
    def footprint_area(self) -> float:
        return self.dimensions.footprint_area if self.dimensions else 0.0

    @property
    def item_volume_m3(self) -> float:
        return self.dimensions.volume_m3 if self.dimensions else 0.0

    @property
    def total_weight(self) -> float:
        return self.count * self.item_weight

    @property
    def total_volume_m3(self) -> float:
        return self.count * self.item_volume_m3

    def orientation_for(self, pallet: Pallet, allow_rotation: bool) -> Optional[Dimensions]:
        """Dimensions to place the item with, or None when it cannot fit the footprint."""
        if self.dimensions is None:
            return None
        if self.dimensions.fits_within(pallet.width, pallet.length):
            return self.dimensions
        if allow_rotation:
            rotated = self.dimensions.rotated()
            if rotated.fits_within(pallet.width, pallet.length):
                return rotated
        return None


@dataclass
class PackedLine:
    """Packing outcome of one PackingItem."""
    item: PackingItem
    placed: int = 0
    footprint_fits: bool = True
    first_layer: Optional[int] = None

    @property
    def requested(self) -> int:
        return self.item.count

    @property
    def unplaced(self) -> int:
        return self.requested - self.placed

    @property
    def can_fit(self) -> bool:
        return self.footprint_fits and self.unplaced == 0

    @property
    def efficiency(self) -> float:
        return self.placed / self.requested if self.requested else 1.0


@dataclass
class LayerStats:
    """
    Geometry of one layer.

    Attributes:
        index: 1-based layer number
        z: Height of the layer's floor above the deck (cm)
        height: Tallest item in the layer (cm)
        items: Items placed in the layer
        vertical_waste: Empty share of the layer's column volume (0..1)
        tallest_product_id: Product that sets the layer height
    """
    index: int
    z: float
    height: float
    items: int = 0
    vertical_waste: float = 0.0
    tallest_product_id: Optional[str] = None


@dataclass
class PackedLayout:
    """Result of a packing run."""
    layout: Layout
    lines: List[PackedLine]
    layer_stats: List[LayerStats]
    efficiency: float
    used_height: float
    height_limit: float

    def line_for(self, item: PackingItem) -> PackedLine:
        for line in self.lines:
            if line.item is item:
                return line
        raise KeyError(f"No packed line for {item.product_id}/{item.unit_id}")


class CompositionPacker:
    """
    Deterministic greedy shelf packer.

    Example:
        packer = CompositionPacker()
        packed = packer.pack(items, pallet, height_limit=150)
        packed.layout.placed_items, packed.efficiency
    """

    def __init__(self, config: EngineConfig = DEFAULT_CONFIG):
        self.config = config

    @staticmethod
    def sort_key(item: PackingItem):
        """Largest footprint first, then tallest, then product and unit id."""
        height = item.dimensions.height if item.dimensions else 0.0
        return (-item.footprint_area, -height, item.product_id, item.unit_id, item.sort_order)

    def pack(self, items: List[PackingItem], pallet: Pallet, height_limit: Optional[float] = None) -> PackedLayout:
        """
        Lay items out on a pallet.

        Args:
            items: Normalized packing items
            pallet: Target pallet (its width and length bound every footprint)
            height_limit: Load height limit in cm (pallet limit when None)

        Returns:
            PackedLayout with the arrangement and per-line counts
        """
        limit = height_limit if height_limit is not None else pallet.stack_height_limit(
            self.config.default_max_stack_height
        )
        ordered = sorted(items, key=self.sort_key)
        packed_lines = [PackedLine(item=item) for item in ordered]

        arrangement: List[PlacedItem] = []
        stats: Dict[int, LayerStats] = {}
        # placed footprint (cm²) and volume (cm³) per layer
        layer_volumes: Dict[int, List[float]] = {}

        cursor_x = 0.0
        row_y = 0.0
        row_depth = 0.0
        layer_z = 0.0
        layer_height = 0.0
        layer_index = 1
        total_items = 0
        stack_height = 0.0

        for packed in packed_lines:
            item = packed.item
            total_items += item.count
            dims = item.orientation_for(pallet, self.config.allow_rotation)
            if dims is None:
                packed.footprint_fits = False
                continue

            per_layer = self._items_per_layer(dims, pallet)
            remaining = item.count
            while remaining > 0:
                if cursor_x + dims.width > pallet.width + EPSILON:
                    row_y += row_depth
                    cursor_x = 0.0
                    row_depth = 0.0
                if row_y + dims.length > pallet.length + EPSILON:
                    layer_z += layer_height
                    layer_index += 1
                    row_y = 0.0
                    cursor_x = 0.0
                    row_depth = 0.0
                    layer_height = 0.0

                # whole layers above the limit only add to the virtual stack height
                fresh_layer = cursor_x == 0.0 and row_y == 0.0 and layer_height == 0.0
                if fresh_layer and layer_z + dims.height > limit + EPSILON and remaining > per_layer:
                    skipped = (remaining - 1) // per_layer
                    layer_z += skipped * dims.height
                    layer_index += skipped
                    remaining -= skipped * per_layer

                top = layer_z + dims.height
                stack_height = max(stack_height, top)
                layer_height = max(layer_height, dims.height)

                if top <= limit + EPSILON:
                    arrangement.append(PlacedItem(
                        product_id=item.product_id,
                        unit_id=item.unit_id,
                        quantity=item.base_units_per_item,
                        position=Position(x=cursor_x, y=row_y, z=layer_z),
                        dimensions=dims,
                        layer=layer_index,
                    ))
                    packed.placed += 1
                    if packed.first_layer is None:
                        packed.first_layer = layer_index

                    layer = stats.setdefault(layer_index, LayerStats(index=layer_index, z=layer_z, height=0.0))
                    layer.items += 1
                    if dims.height > layer.height:
                        layer.height = dims.height
                        layer.tallest_product_id = item.product_id
                    volumes = layer_volumes.setdefault(layer_index, [0.0, 0.0])
                    volumes[0] += dims.footprint_area
                    volumes[1] += dims.volume_cm3

                cursor_x += dims.width
                row_depth = max(row_depth, dims.length)
                remaining -= 1

        layers = [stats[index] for index in sorted(stats)]
        for layer in layers:
            footprint, item_volume = layer_volumes[layer.index]
            column = footprint * layer.height
            layer.vertical_waste = 1.0 - item_volume / column if column > 0 else 0.0

        used_height = max((p.position.z + p.dimensions.height for p in arrangement), default=0.0)
        placed_volume = sum(p.dimensions.volume_cm3 for p in arrangement)
        if used_height > 0:
            efficiency = min(placed_volume / (pallet.footprint_area * used_height), 1.0)
        else:
            efficiency = 0.0

        layout = Layout(
            layers=len(layers),
            items_per_layer=[layer.items for layer in layers],
            total_items=total_items,
            placed_items=len(arrangement),
            stack_height=stack_height,
            arrangement=arrangement,
        )
        logger.debug(
            f"Packed {layout.placed_items}/{total_items} items on pallet {pallet.id} "
            f"in {layout.layers} layers, efficiency {efficiency:.1%}"
        )
        return PackedLayout(
            layout=layout,
            lines=packed_lines,
            layer_stats=layers,
            efficiency=efficiency,
            used_height=used_height,
            height_limit=limit,
        )

    @staticmethod
    def _items_per_layer(dims: Dimensions, pallet: Pallet) -> int:
        """Items of one size that fill an empty layer, counted the way the shelf loop advances."""
        across = 0
        x = 0.0
        while x + dims.width <= pallet.width + EPSILON:
            x += dims.width
            across += 1
        rows = 0
        y = 0.0
        while y + dims.length <= pallet.length + EPSILON:
            y += dims.length
            rows += 1
        return across * rows

    def recommendations(self, packed: PackedLayout, weight_utilization: Optional[float] = None) -> List[str]:
        """
        Heuristic suggestions for improving a packed layout.

        Args:
            packed: Packing result
            weight_utilization: Weight total / limit, when known

        Returns:
            Recommendation messages
        """
        recommendations = []
        layout = packed.layout

        if layout.placed_items and packed.efficiency < self.config.recommendation_efficiency:
            recommendations.append(
                f"Space efficiency is {packed.efficiency:.1%}; consider a smaller pallet "
                f"or adding products to fill the layers"
            )

        if layout.unplaced_items:
            recommendations.append(
                f"{layout.unplaced_items} of {layout.total_items} items do not fit; "
                f"split the request across pallets or use a larger pallet"
            )

        for layer in packed.layer_stats:
            if layer.vertical_waste > self.config.vertical_waste_threshold and layer.tallest_product_id:
                recommendations.append(
                    f"Product {layer.tallest_product_id} sets the height of layer {layer.index} "
                    f"leaving {layer.vertical_waste:.0%} of its vertical space empty; "
                    f"place it on its own layer"
                )

        if weight_utilization is not None and weight_utilization < self.config.underused_weight:
            recommendations.append(
                f"Weight capacity is underused ({weight_utilization:.1%}); "
                f"the pallet can carry heavier products"
            )

        return recommendations
