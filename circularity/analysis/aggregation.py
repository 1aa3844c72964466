"""
Metrics Aggregation Module

Reduces collections of lots, cycles, exhibitors and waste records into the
scalar summaries and chart series shown on the client dashboard and used by
the report composers.

Every function accepts an empty collection and returns zero-valued output,
so a client with no data yet renders placeholders instead of failing.
Numeric fields that are not real numbers raise RecordValidationError rather
than being coerced to zero.
"""

from __future__ import annotations

import math
import numbers
from typing import Dict, Iterable, List, Optional, Sequence

import pandas as pd

from circularity.models.records import (
    ClientMetrics,
    Cycle,
    Exhibitor,
    FlowType,
    Lot,
    MetricsBundle,
    WasteRecord,
    safe_rate,
)
from circularity.utils.errors import RecordValidationError

# kgCO2e released producing 1 kg of virgin plastic. Every kg of material that
# completes a reuse cycle avoids this much production.
VIRGIN_MATERIAL_EMISSION_FACTOR = 3.5

# kgCO2e per kg when every cycle uses freshly produced material (virgin
# production plus full processing), used for the business-as-usual line.
BUSINESS_AS_USUAL_EMISSION_FACTOR = 4.2

SERIES_COLUMNS = ["cycle_number", "cumulative_generated", "cumulative_avoided", "net_balance"]

WASTE_COLUMNS = [
    "month",
    "organic_waste",
    "inorganic_waste",
    "recyclable_waste",
    "total_waste",
    "landfill_diversion_pct",
]


def _number(value, record_id: Optional[str], field_name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise RecordValidationError(
            f"Field '{field_name}' must be a real number, got {value!r}",
            record_id=record_id,
            field=field_name,
            value=value,
        )
    if math.isnan(value) or math.isinf(value):
        raise RecordValidationError(
            f"Field '{field_name}' must be finite, got {value!r}",
            record_id=record_id,
            field=field_name,
            value=value,
        )
    return float(value)


def _integer(value, record_id: Optional[str], field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, numbers.Integral):
        raise RecordValidationError(
            f"Field '{field_name}' must be an integer, got {value!r}",
            record_id=record_id,
            field=field_name,
            value=value,
        )
    return int(value)


def _cycle_id(cycle: Cycle) -> str:
    return cycle.lot_id or f"cycle-{cycle.number}"


def _flow_type(value, record_id: Optional[str]) -> FlowType:
    try:
        return FlowType(value)
    except ValueError as exc:
        raise RecordValidationError(
            f"Unknown flow type {value!r}", record_id=record_id, field="flow_type", value=value
        ) from exc


# ---------------------------------------------------------------------------
# Lot portfolio rollups
# ---------------------------------------------------------------------------

def total_emissions_avoided(lots: Iterable[Lot]) -> float:
    """Sum of each lot's avoided emissions (kgCO2e). Callers filter beforehand."""
    return sum(_number(lot.total_emissions_avoided, lot.id, "total_emissions_avoided") for lot in lots)


def total_cycles(lots: Iterable[Lot]) -> int:
    """Completed plus active cycles across lots (``current_cycle``, not capacity)."""
    return sum(_integer(lot.current_cycle, lot.id, "current_cycle") for lot in lots)


def avg_cycles_per_lot(lots: Sequence[Lot]) -> float:
    lots = list(lots)
    if not lots:
        return 0.0
    return total_cycles(lots) / len(lots)


def flow_type_distribution(lots: Iterable[Lot]) -> Dict[str, int]:
    """Count lots per flow type; every flow type is present, zero-filled."""
    distribution = {flow_type.value: 0 for flow_type in FlowType}
    for lot in lots:
        distribution[_flow_type(lot.flow_type, lot.id).value] += 1
    return distribution


def filter_lots(
    lots: Iterable[Lot],
    client_owner: Optional[str] = None,
    flow_type: Optional[str] = None,
    status: Optional[str] = None,
) -> List[Lot]:
    """Return the lots matching every supplied criterion."""
    wanted_flow = _flow_type(flow_type, None) if flow_type is not None else None
    selected = []
    for lot in lots:
        if client_owner is not None and lot.client_owner != client_owner:
            continue
        if wanted_flow is not None and _flow_type(lot.flow_type, lot.id) != wanted_flow:
            continue
        if status is not None and lot.status != status:
            continue
        selected.append(lot)
    return selected


def total_distance(lots: Iterable[Lot]) -> float:
    return sum(
        _number(cycle.distance, lot.id, "distance")
        for lot in lots
        for cycle in lot.cycles
    )


def summarize_client_lots(lots: Sequence[Lot]) -> ClientMetrics:
    """Build the dashboard summary for one client's lots."""
    lots = list(lots)
    return ClientMetrics(
        total_lots=len(lots),
        active_lots=sum(1 for lot in lots if lot.status == "active"),
        total_cycles=total_cycles(lots),
        total_emissions_avoided=total_emissions_avoided(lots),
        total_plastic_recycled=sum(
            _number(lot.total_plastic_recycled, lot.id, "total_plastic_recycled") for lot in lots
        ),
        total_km=total_distance(lots),
        avg_cycles_per_lot=avg_cycles_per_lot(lots),
    )


# ---------------------------------------------------------------------------
# Cycle emissions series
# ---------------------------------------------------------------------------

def emissions_breakdown(cycles: Iterable[Cycle]) -> Dict[str, float]:
    """Summed transport, processing and total emissions over cycles."""
    breakdown = {"transport": 0.0, "processing": 0.0, "total": 0.0}
    for cycle in cycles:
        cycle_id = _cycle_id(cycle)
        breakdown["transport"] += _number(cycle.emissions.transport, cycle_id, "emissions.transport")
        breakdown["processing"] += _number(cycle.emissions.processing, cycle_id, "emissions.processing")
        breakdown["total"] += _number(cycle.emissions.total, cycle_id, "emissions.total")
    return breakdown


def _cycles_frame(cycles: Iterable[Cycle], emission_factor: float, bau_factor: float) -> pd.DataFrame:
    rows = []
    for cycle in cycles:
        cycle_id = _cycle_id(cycle)
        weight = _number(cycle.weight, cycle_id, "weight")
        transport = _number(cycle.emissions.transport, cycle_id, "emissions.transport")
        rows.append({
            "cycle_number": _integer(cycle.number, cycle_id, "number"),
            "campaign": cycle.campaign,
            "transport": transport,
            "processing": _number(cycle.emissions.processing, cycle_id, "emissions.processing"),
            "total": _number(cycle.emissions.total, cycle_id, "emissions.total"),
            "avoided": weight * emission_factor,
            "business_as_usual": weight * bau_factor + transport,
        })

    df = pd.DataFrame(
        rows,
        columns=[
            "cycle_number", "campaign", "transport", "processing",
            "total", "avoided", "business_as_usual",
        ],
    )
    # Stable sort keeps original order for (invalid) duplicate numbers
    return df.sort_values("cycle_number", kind="stable").reset_index(drop=True)


def cumulative_emissions_series(
    cycles: Iterable[Cycle],
    emission_factor: float = VIRGIN_MATERIAL_EMISSION_FACTOR,
) -> List[Dict[str, float]]:
    """
    Running emissions balance, one point per cycle in ascending cycle order.

    Args:
        cycles: Cycles of a single lot or exhibitor
        emission_factor: kgCO2e avoided per kg of reused material

    Returns:
        List of points with cycle_number, cumulative_generated,
        cumulative_avoided and net_balance (avoided - generated), rounded to 2 dp
    """
    df = _cycles_frame(cycles, emission_factor, BUSINESS_AS_USUAL_EMISSION_FACTOR)
    if df.empty:
        return []

    generated = df["total"].cumsum()
    avoided = df["avoided"].cumsum()

    return [
        {
            "cycle_number": int(number),
            "cumulative_generated": round(float(gen), 2),
            "cumulative_avoided": round(float(avd), 2),
            "net_balance": round(float(avd - gen), 2),
        }
        for number, gen, avd in zip(df["cycle_number"], generated, avoided)
    ]


def detailed_emissions_series(
    cycles: Iterable[Cycle],
    emission_factor: float = VIRGIN_MATERIAL_EMISSION_FACTOR,
    bau_factor: float = BUSINESS_AS_USUAL_EMISSION_FACTOR,
) -> pd.DataFrame:
    """Per-cycle chart rows including the business-as-usual comparison line."""
    df = _cycles_frame(cycles, emission_factor, bau_factor)
    df["cumulative_emissions"] = df["total"].cumsum()
    df["cumulative_avoided"] = df["avoided"].cumsum()
    df["cumulative_bau"] = df["business_as_usual"].cumsum()
    df["net_balance"] = df["cumulative_avoided"] - df["cumulative_emissions"]
    numeric = df.columns.drop(["cycle_number", "campaign"])
    df[numeric] = df[numeric].astype(float).round(2)
    return df


def emissions_savings_summary(series: pd.DataFrame) -> Dict[str, float]:
    """Totals for the emissions KPI row: BAU vs circular and percentage saved."""
    if series.empty:
        return {"total_bau": 0.0, "total_emissions": 0.0, "total_avoided": 0.0,
                "net_balance": 0.0, "savings_pct": 0.0}

    last = series.iloc[-1]
    total_bau = float(last["cumulative_bau"])
    total_emissions = float(last["cumulative_emissions"])
    return {
        "total_bau": total_bau,
        "total_emissions": total_emissions,
        "total_avoided": float(last["cumulative_avoided"]),
        "net_balance": float(last["net_balance"]),
        "savings_pct": round(safe_rate(total_bau - total_emissions, total_bau)),
    }


# ---------------------------------------------------------------------------
# Exhibitors
# ---------------------------------------------------------------------------

def exhibitor_stats(
    exhibitor: Exhibitor,
    emission_factor: float = VIRGIN_MATERIAL_EMISSION_FACTOR,
) -> Dict[str, float]:
    """
    Derive an exhibitor's statistics from its graphic history.

    Totals only include completed cycles (end date set); recycled-into
    counts include the whole history.
    """
    history = list(exhibitor.graphic_history)
    completed = [cycle for cycle in history if not cycle.is_active]

    breakdown = emissions_breakdown(completed)
    total_distance_km = sum(_number(c.distance, _cycle_id(c), "distance") for c in completed)
    total_weight = sum(_number(c.weight, _cycle_id(c), "weight") for c in completed)
    total_savings = sum(
        _number(c.savings_vs_virgin, _cycle_id(c), "savings_vs_virgin") for c in completed
    )
    emissions_avoided = total_weight * emission_factor

    return {
        "total_cycles": len(history),
        "completed_cycles": len(completed),
        "total_emissions": round(breakdown["total"], 2),
        "total_transport": round(breakdown["transport"], 2),
        "total_processing": round(breakdown["processing"], 2),
        "total_distance": round(total_distance_km, 2),
        "total_weight": round(total_weight, 2),
        "total_savings_vs_virgin": round(total_savings, 2),
        "recycled_to_exhibitors": sum(1 for c in history if c.recycled_into == "exhibitor"),
        "recycled_to_graphics": sum(1 for c in history if c.recycled_into == "graphic"),
        "emissions_avoided": round(emissions_avoided, 2),
        "net_balance": round(emissions_avoided - breakdown["total"], 2),
    }


def total_graphic_changes(exhibitors: Iterable[Exhibitor]) -> int:
    return sum(_integer(e.graphic_changes, e.id, "graphic_changes") for e in exhibitors)


def graphics_recycled_into(exhibitors: Iterable[Exhibitor], target: str) -> int:
    """Count history entries whose material was recycled into ``target`` ('exhibitor' or 'graphic')."""
    return sum(
        1
        for exhibitor in exhibitors
        for cycle in exhibitor.graphic_history
        if cycle.recycled_into == target
    )


# ---------------------------------------------------------------------------
# Waste
# ---------------------------------------------------------------------------

def landfill_diversion_rate(organic: float, inorganic: float, recyclable: float) -> float:
    """Recyclable waste as a percentage of waste sent to landfill (0 when nothing is landfilled)."""
    return safe_rate(recyclable, organic + inorganic)


def waste_totals(records: Iterable[WasteRecord]) -> Dict[str, float]:
    organic = inorganic = recyclable = 0.0
    for record in records:
        record_id = str(record.id)
        organic += _number(record.organic_waste, record_id, "organic_waste")
        inorganic += _number(record.inorganic_waste, record_id, "inorganic_waste")
        recyclable += _number(record.recyclable_waste, record_id, "recyclable_waste")

    return {
        "organic": organic,
        "inorganic": inorganic,
        "recyclable": recyclable,
        "total": organic + inorganic + recyclable,
        "landfill_diversion_pct": landfill_diversion_rate(organic, inorganic, recyclable),
    }


def monthly_waste_breakdown(records: Iterable[WasteRecord]) -> pd.DataFrame:
    """Waste totals grouped by calendar month (``YYYY-MM``), sorted ascending."""
    rows = []
    for record in records:
        record_id = str(record.id)
        rows.append({
            "month": record.date.strftime("%Y-%m"),
            "organic_waste": _number(record.organic_waste, record_id, "organic_waste"),
            "inorganic_waste": _number(record.inorganic_waste, record_id, "inorganic_waste"),
            "recyclable_waste": _number(record.recyclable_waste, record_id, "recyclable_waste"),
        })

    if not rows:
        return pd.DataFrame(columns=WASTE_COLUMNS)

    monthly = (
        pd.DataFrame(rows)
        .groupby("month", as_index=False, sort=True)
        .sum()
    )
    monthly["total_waste"] = (
        monthly["organic_waste"] + monthly["inorganic_waste"] + monthly["recyclable_waste"]
    )
    monthly["landfill_diversion_pct"] = [
        landfill_diversion_rate(org, inorg, rec)
        for org, inorg, rec in zip(
            monthly["organic_waste"], monthly["inorganic_waste"], monthly["recyclable_waste"]
        )
    ]
    return monthly[WASTE_COLUMNS]


# ---------------------------------------------------------------------------
# Report metrics
# ---------------------------------------------------------------------------

def build_metrics_bundle(
    lots: Sequence[Lot] = (),
    exhibitors: Sequence[Exhibitor] = (),
    waste_records: Sequence[WasteRecord] = (),
    emission_factor: float = VIRGIN_MATERIAL_EMISSION_FACTOR,
) -> MetricsBundle:
    """
    Collapse a client's lots, exhibitors and waste records into the figures
    used by every report composer.

    Material composition weighs each lot's recycled plastic and each
    exhibitor's completed-cycle weight by its recycled-content percentage.
    """
    stats = [(exhibitor, exhibitor_stats(exhibitor, emission_factor)) for exhibitor in exhibitors]
    lot_cycles = [cycle for lot in lots for cycle in lot.cycles]
    lot_breakdown = emissions_breakdown(lot_cycles)

    total_materials = 0.0
    recycled_materials = 0.0
    for lot in lots:
        circulated = _number(lot.total_plastic_recycled, lot.id, "total_plastic_recycled")
        content = _number(lot.recycled_content, lot.id, "recycled_content")
        total_materials += circulated
        recycled_materials += circulated * content / 100
    for exhibitor, exhibitor_figures in stats:
        content = _number(exhibitor.recycled_content, exhibitor.id, "recycled_content")
        total_materials += exhibitor_figures["total_weight"]
        recycled_materials += exhibitor_figures["total_weight"] * content / 100

    waste = waste_totals(waste_records)

    return MetricsBundle(
        exhibitors=len(stats),
        cycles=total_graphic_changes(exhibitors) + total_cycles(lots),
        recycled_kg=(
            sum(s["total_weight"] for _, s in stats)
            + sum(_number(lot.total_plastic_recycled, lot.id, "total_plastic_recycled") for lot in lots)
        ),
        total_materials_kg=total_materials,
        recycled_materials_kg=recycled_materials,
        virgin_materials_kg=total_materials - recycled_materials,
        emissions_generated=sum(s["total_emissions"] for _, s in stats) + lot_breakdown["total"],
        emissions_avoided=sum(s["emissions_avoided"] for _, s in stats) + total_emissions_avoided(lots),
        transport_km=sum(s["total_distance"] for _, s in stats) + total_distance(lots),
        transport_emissions=sum(s["total_transport"] for _, s in stats) + lot_breakdown["transport"],
        organic_waste_kg=waste["organic"],
        inorganic_waste_kg=waste["inorganic"],
        recyclable_waste_kg=waste["recyclable"],
    )
