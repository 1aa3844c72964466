"""Utilities for exporting dashboard-ready datasets from aggregated records.

The payload mirrors the data shapes the client dashboard renders:

1. Summary statistics (lot portfolio plus exhibitor totals)
2. Flow-type distribution with display names and colours
3. Per-lot cumulative emissions balance
4. Per-exhibitor emissions series with the business-as-usual comparison
5. Monthly waste series and overall waste composition
"""

import json
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import pandas as pd
from loguru import logger

from config.config import DATA_OUTPUTS_DIR, get_emission_factors, get_flow_type_catalog
from circularity.analysis.aggregation import (
    cumulative_emissions_series,
    detailed_emissions_series,
    emissions_savings_summary,
    exhibitor_stats,
    flow_type_distribution,
    monthly_waste_breakdown,
    summarize_client_lots,
    total_graphic_changes,
    waste_totals,
)
from circularity.models.records import Exhibitor, Lot, WasteRecord
from circularity.utils.run_log import convert_to_json_serializable


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def _camel_records(df: pd.DataFrame) -> List[Dict]:
    return df.rename(columns=_camel).to_dict(orient="records")


class DashboardDataBuilder:
    """Builds a JSON payload that mirrors the dashboard data schema."""

    WASTE_COLORS = {
        "organic": "#10B981",
        "inorganic": "#6B7280",
        "recyclable": "#3B82F6",
    }

    WASTE_LABELS = {
        "organic": "Orgánicos",
        "inorganic": "Inorgánicos",
        "recyclable": "Reciclables",
    }

    def __init__(
        self,
        output_dir: Path = DATA_OUTPUTS_DIR,
        emission_factors: Optional[Dict[str, float]] = None,
    ):
        self.output_dir = Path(output_dir) / "dashboard"
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.emission_factors = emission_factors or get_emission_factors()

    def build_dataset(
        self,
        lots: Sequence[Lot] = (),
        exhibitors: Sequence[Exhibitor] = (),
        waste_records: Sequence[WasteRecord] = (),
    ) -> Dict:
        """Create a dashboard dataset from records.

        Args:
            lots: Lots visible to the client
            exhibitors: Exhibitors owned by the client
            waste_records: The client's monthly waste records

        Returns:
            Dictionary with all dashboard data arrays
        """
        dataset = {
            "summaryStats": self._format_summary_stats(lots, exhibitors),
            "flowTypeData": self._format_flow_types(lots),
            "lotEmissionsData": self._format_lot_emissions(lots),
            "exhibitorEmissionsData": self._format_exhibitor_emissions(exhibitors),
            "monthlyWasteData": _camel_records(monthly_waste_breakdown(waste_records)),
            "wasteCompositionData": self._format_waste_composition(waste_records),
        }

        return convert_to_json_serializable(dataset)

    def write_dataset(self, dataset: Dict) -> Path:
        """Persist the dataset to the outputs directory."""
        output_path = self.output_dir / "dashboard-data.json"
        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(dataset, f, indent=2, ensure_ascii=False)

        logger.info(f"✓ Dashboard dataset written to {output_path}")
        return output_path

    def _format_summary_stats(self, lots: Sequence[Lot], exhibitors: Sequence[Exhibitor]) -> Dict:
        metrics = summarize_client_lots(lots)
        stats = [exhibitor_stats(e, self.emission_factors["virgin_material"]) for e in exhibitors]

        return {
            "totalLots": metrics.total_lots,
            "activeLots": metrics.active_lots,
            "totalCycles": metrics.total_cycles,
            "avgCyclesPerLot": round(metrics.avg_cycles_per_lot, 2),
            "totalEmissionsAvoided": round(metrics.total_emissions_avoided, 2),
            "totalPlasticRecycled": round(metrics.total_plastic_recycled, 2),
            "totalKm": round(metrics.total_km, 2),
            "exhibitors": len(stats),
            "graphicChanges": total_graphic_changes(exhibitors),
            "exhibitorEmissionsAvoided": round(sum(s["emissions_avoided"] for s in stats), 2),
            "exhibitorNetBalance": round(sum(s["net_balance"] for s in stats), 2),
        }

    def _format_flow_types(self, lots: Sequence[Lot]) -> List[Dict]:
        catalog = get_flow_type_catalog()
        distribution = flow_type_distribution(lots)
        return [
            {
                "flowType": flow_type,
                "name": catalog.get(flow_type, {}).get("name", flow_type),
                "description": catalog.get(flow_type, {}).get("description", ""),
                "color": catalog.get(flow_type, {}).get("color", "#9CA3AF"),
                "count": count,
            }
            for flow_type, count in distribution.items()
        ]

    def _format_lot_emissions(self, lots: Sequence[Lot]) -> List[Dict]:
        factor = self.emission_factors["virgin_material"]
        return [
            {
                "lotId": lot.id,
                "series": [
                    {_camel(key): value for key, value in point.items()}
                    for point in cumulative_emissions_series(lot.cycles, factor)
                ],
            }
            for lot in lots
        ]

    def _format_exhibitor_emissions(self, exhibitors: Sequence[Exhibitor]) -> List[Dict]:
        entries = []
        for exhibitor in exhibitors:
            series = detailed_emissions_series(
                exhibitor.graphic_history,
                self.emission_factors["virgin_material"],
                self.emission_factors["business_as_usual"],
            )
            summary = emissions_savings_summary(series)
            entries.append({
                "exhibitorId": exhibitor.id,
                "series": _camel_records(series),
                "summary": {_camel(key): value for key, value in summary.items()},
            })
        return entries

    def _format_waste_composition(self, waste_records: Sequence[WasteRecord]) -> List[Dict]:
        totals = waste_totals(waste_records)
        return [
            {
                "category": category,
                "name": self.WASTE_LABELS[category],
                "value": round(totals[category], 2),
                "color": self.WASTE_COLORS[category],
            }
            for category in ("organic", "inorganic", "recyclable")
        ]
