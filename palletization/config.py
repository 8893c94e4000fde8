"""Engine configuration.

Thresholds used by the composition validator and packer. Defaults come from
:mod:`palletization.constants`; callers override them per engine instance.
"""

from pydantic import BaseModel, ConfigDict, Field, model_validator

from . import constants


class EngineConfig(BaseModel):
    """
    Tunable limits and heuristics for composition calculations.

    Attributes:
        default_max_stack_height: Load height limit (cm) for pallets without one
        warning_utilization: Utilization fraction that starts the warning band
        low_efficiency_warning: Efficiency below which a warning is emitted
        recommendation_efficiency: Efficiency below which recommendations are made
        underused_weight: Weight utilization below which the pallet is underused
        vertical_waste_threshold: Empty share of a layer that flags its tallest product
        max_stable_layers: Layer count above which a stability warning is emitted
        allow_rotation: Allow turning items 90 degrees on the pallet footprint
        default_quantity_precision: Decimal places for products without a precision
    """

    default_max_stack_height: float = Field(
        default=constants.DEFAULT_MAX_STACK_HEIGHT_CM,
        description="Load height limit in cm above the pallet deck",
        gt=0,
    )
    warning_utilization: float = Field(
        default=constants.WARNING_UTILIZATION,
        description="Start of the utilization warning band",
        gt=0,
        le=1,
    )
    low_efficiency_warning: float = Field(
        default=constants.LOW_EFFICIENCY_WARNING,
        ge=0,
        le=1,
    )
    recommendation_efficiency: float = Field(
        default=constants.RECOMMENDATION_EFFICIENCY,
        ge=0,
        le=1,
    )
    underused_weight: float = Field(
        default=constants.UNDERUSED_WEIGHT,
        ge=0,
        le=1,
    )
    vertical_waste_threshold: float = Field(
        default=constants.VERTICAL_WASTE_THRESHOLD,
        gt=0,
        le=1,
    )
    max_stable_layers: int = Field(default=constants.MAX_STABLE_LAYERS, ge=1)
    allow_rotation: bool = True
    default_quantity_precision: int = Field(
        default=constants.DEFAULT_QUANTITY_PRECISION,
        ge=0,
        le=12,
    )

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def check_threshold_order(self) -> "EngineConfig":
        """Low-efficiency warnings must not start above the recommendation threshold."""
        if self.low_efficiency_warning > self.recommendation_efficiency:
            raise ValueError(
                f"low_efficiency_warning ({self.low_efficiency_warning}) must be <= "
                f"recommendation_efficiency ({self.recommendation_efficiency})"
            )
        return self


DEFAULT_CONFIG = EngineConfig()
