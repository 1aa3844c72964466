"""
Record Model

Immutable value records for material lots, reuse cycles, exhibitors and
monthly waste data. Aggregations never mutate these records; they always
produce new derived values.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Optional, Tuple


class FlowType(str, Enum):
    """Source → destination circular-flow categories."""

    GRAPHICS_TO_EXHIBITORS = "graficos-exhibidores"
    EXHIBITORS_TO_EXHIBITORS = "exhibidores-exhibidores"
    GRAPHICS_TO_GRAPHICS = "graficos-graficos"


LOT_STATUSES = ("active", "collected", "processing")
EXHIBITOR_CONDITIONS = ("excellent", "good", "fair")
EXHIBITOR_STATUSES = ("active", "transit", "maintenance")
RECYCLED_INTO_TARGETS = ("exhibitor", "graphic")


@dataclass(frozen=True)
class Location:
    store: str
    address: str
    city: str


@dataclass(frozen=True)
class CycleEmissions:
    """Emissions for one cycle in kgCO2e; total is transport + processing."""

    transport: float
    processing: float
    total: float


@dataclass(frozen=True)
class Cycle:
    """
    One reuse/transport/processing interval of a lot or exhibitor.

    Lot cycles only use the core fields. Exhibitor graphic cycles also carry
    traceability ids and material flow figures.
    """

    number: int
    start_date: date
    end_date: Optional[date]
    client: str
    brand: str
    campaign: str
    location: Location
    emissions: CycleEmissions
    distance: float
    weight: float = 0.0
    returned_to_origin: bool = False
    lot_id: Optional[str] = None
    recycled_into: Optional[str] = None
    source_from_lot_id: Optional[str] = None
    recycled_to_lot_id: Optional[str] = None
    material_recovered: float = 0.0
    material_sent: float = 0.0
    savings_vs_virgin: float = 0.0

    @property
    def is_active(self) -> bool:
        return self.end_date is None


@dataclass(frozen=True)
class Lot:
    """A tracked batch of circulating material with its cycle history."""

    id: str
    flow_type: FlowType
    product_type: str
    weight: float
    recycled_content: float
    original_date: date
    current_cycle: int
    total_cycles: int
    total_emissions_avoided: float
    total_plastic_recycled: float
    status: str
    client_owner: str
    cycles: Tuple[Cycle, ...] = ()

    @property
    def active_cycle(self) -> Optional[Cycle]:
        open_cycles = [cycle for cycle in self.cycles if cycle.is_active]
        return open_cycles[0] if open_cycles else None


@dataclass(frozen=True)
class CurrentGraphic:
    campaign: str
    installed_date: date
    client: str
    brand: str


@dataclass(frozen=True)
class Exhibitor:
    """A reusable exhibitor whose graphics are changed (and recycled) per campaign."""

    id: str
    client_owner: str
    model: str
    location: Location
    years_in_operation: float
    graphic_changes: int
    current_graphic: CurrentGraphic
    condition: str
    status: str = "active"
    recycled_content: float = 0.0
    graphic_history: Tuple[Cycle, ...] = ()


@dataclass(frozen=True)
class Client:
    id: int
    name: str


@dataclass(frozen=True)
class WasteRecord:
    """Monthly waste figures (kg) reported for one client site."""

    id: int
    client_id: int
    date: date
    organic_waste: float
    inorganic_waste: float
    recyclable_waste: float
    location: Optional[str] = None
    observations: str = ""

    @property
    def total_waste(self) -> float:
        return self.organic_waste + self.inorganic_waste + self.recyclable_waste


@dataclass(frozen=True)
class ClientMetrics:
    """Portfolio summary shown on a client's dashboard."""

    total_lots: int
    active_lots: int
    total_cycles: int
    total_emissions_avoided: float
    total_plastic_recycled: float
    total_km: float
    avg_cycles_per_lot: float


@dataclass(frozen=True)
class WasteSummary:
    """
    Totals behind a client waste report.

    ``corrections`` lists every manual adjustment applied to the computed
    figures, so rendered reports can flag them.
    """

    organic_total: float
    inorganic_total: float
    recyclable_total: float
    total_waste: float
    landfill_diversion_pct: float
    period_start: Optional[date] = None
    period_end: Optional[date] = None
    record_count: int = 0
    corrections: Tuple[str, ...] = ()


@dataclass(frozen=True)
class MetricsBundle:
    """
    Pre-aggregated figures shared by every report composer.

    Derived rates are properties so each one applies the same zero guard.
    """

    exhibitors: int = 0
    cycles: int = 0
    recycled_kg: float = 0.0
    total_materials_kg: float = 0.0
    recycled_materials_kg: float = 0.0
    virgin_materials_kg: float = 0.0
    emissions_generated: float = 0.0
    emissions_avoided: float = 0.0
    transport_km: float = 0.0
    transport_emissions: float = 0.0
    organic_waste_kg: float = 0.0
    inorganic_waste_kg: float = 0.0
    recyclable_waste_kg: float = 0.0
    # Reconciled client figures that replace the values derived from records
    total_waste_override: Optional[float] = None
    landfill_diversion_override: Optional[float] = None
    notes: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def net_balance(self) -> float:
        """Emissions avoided minus emissions generated (positive is a net saving)."""
        return self.emissions_avoided - self.emissions_generated

    @property
    def recycled_content_percent(self) -> float:
        return safe_rate(self.recycled_materials_kg, self.total_materials_kg)

    @property
    def landfill_diversion_rate(self) -> float:
        if self.landfill_diversion_override is not None:
            return self.landfill_diversion_override
        return safe_rate(self.recyclable_waste_kg, self.organic_waste_kg + self.inorganic_waste_kg)

    @property
    def total_waste_kg(self) -> float:
        if self.total_waste_override is not None:
            return self.total_waste_override
        return self.organic_waste_kg + self.inorganic_waste_kg + self.recyclable_waste_kg


def safe_rate(numerator: float, denominator: float) -> float:
    """Percentage of numerator over denominator, defined as 0 when the denominator is 0."""
    if denominator == 0:
        return 0.0
    return numerator / denominator * 100
