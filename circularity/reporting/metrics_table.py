"""Headline metrics table for spreadsheet exports, with schema validation."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Mapping, Optional, Sequence, Union

import pandas as pd
from loguru import logger

from circularity.models.records import MetricsBundle

METRICS_SHEET_NAME = "Indicadores"

METRICS_COLUMNS = [
    "metric_key",
    "metric_label",
    "value",
    "unit",
    "source",
]

REQUIRED_CIRCULARITY_METRIC_KEYS = {
    "exhibitors",
    "cycles",
    "recycled_kg",
    "total_materials_kg",
    "recycled_materials_kg",
    "virgin_materials_kg",
    "recycled_content_pct",
}

REQUIRED_EMISSIONS_METRIC_KEYS = {
    "emissions_generated_kg",
    "emissions_avoided_kg",
    "net_balance_kg",
    "transport_km",
    "transport_emissions_kg",
}

REQUIRED_WASTE_METRIC_KEYS = {
    "organic_waste_kg",
    "inorganic_waste_kg",
    "recyclable_waste_kg",
    "total_waste_kg",
    "landfill_diversion_pct",
}

PERCENT_METRIC_REQUIREMENTS: Mapping[str, Mapping[str, Sequence[str]]] = {
    "recycled_content_pct": {
        "numerator_keys": ("recycled_materials_kg",),
        "denominator_keys": ("total_materials_kg",),
    },
    "landfill_diversion_pct": {
        "numerator_keys": ("recyclable_waste_kg",),
        "denominator_keys": ("organic_waste_kg", "inorganic_waste_kg"),
    },
}




def build_metrics_dataframe(bundle: MetricsBundle) -> pd.DataFrame:
    """
    Flatten a metrics bundle into one row per headline figure.

    Waste total and diversion rows taken from a reconciled client summary
    are marked with source ``data_correction``.
    """
    rows = []

    def add_row(metric_key: str, value, metric_label: str, unit: Optional[str] = None,
                source: str = "metrics_bundle") -> None:
        rows.append(
            {
                "metric_key": metric_key,
                "metric_label": metric_label,
                "value": value,
                "unit": unit,
                "source": source,
            }
        )

    add_row("exhibitors", bundle.exhibitors, "Exhibidores", unit="count")
    add_row("cycles", bundle.cycles, "Ciclos", unit="count")
    add_row("recycled_kg", round(bundle.recycled_kg, 2), "Material reciclado", unit="kg")
    add_row("total_materials_kg", round(bundle.total_materials_kg, 2), "Materiales totales", unit="kg")
    add_row("recycled_materials_kg", round(bundle.recycled_materials_kg, 2), "Materiales reciclados", unit="kg")
    add_row("virgin_materials_kg", round(bundle.virgin_materials_kg, 2), "Materiales vírgenes", unit="kg")
    add_row("recycled_content_pct", round(bundle.recycled_content_percent, 2), "Contenido reciclado",
            unit="percent")

    add_row("emissions_generated_kg", round(bundle.emissions_generated, 2), "Emisiones generadas",
            unit="kgCO2e")
    add_row("emissions_avoided_kg", round(bundle.emissions_avoided, 2), "Emisiones evitadas",
            unit="kgCO2e")
    add_row("net_balance_kg", round(bundle.net_balance, 2), "Balance neto", unit="kgCO2e")
    add_row("transport_km", round(bundle.transport_km, 2), "Distancia de transporte", unit="km")
    add_row("transport_emissions_kg", round(bundle.transport_emissions, 2), "Emisiones de transporte",
            unit="kgCO2e")

    add_row("organic_waste_kg", round(bundle.organic_waste_kg, 2), "Residuos orgánicos", unit="kg")
    add_row("inorganic_waste_kg", round(bundle.inorganic_waste_kg, 2), "Residuos inorgánicos", unit="kg")
    add_row("recyclable_waste_kg", round(bundle.recyclable_waste_kg, 2), "Residuos reciclables", unit="kg")
    add_row("total_waste_kg", round(bundle.total_waste_kg, 2), "Total de residuos", unit="kg",
            source="data_correction" if bundle.total_waste_override is not None else "metrics_bundle")
    add_row("landfill_diversion_pct", round(bundle.landfill_diversion_rate, 2),
            "Desviación de relleno sanitario", unit="percent",
            source="data_correction" if bundle.landfill_diversion_override is not None else "metrics_bundle")

    return pd.DataFrame(rows, columns=METRICS_COLUMNS)


def load_metrics_workbook(path: Union[str, Path], sheet_name: str = METRICS_SHEET_NAME) -> pd.DataFrame:
    """
    Read a headline metrics export back and validate it.

    Raises:
        FileNotFoundError: If the workbook does not exist
        ValueError: If the sheet breaks the metrics schema
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Metrics workbook not found: {path}")

    dataframe = pd.read_excel(path, sheet_name=sheet_name)
    validate_metrics_dataframe(dataframe)
    logger.info(f"Loaded {len(dataframe)} headline metrics from {path}")
    return dataframe


def validate_metrics_dataframe(dataframe: pd.DataFrame) -> None:
    """Validate columns, required metric keys, numeric values and non-negative percents."""
    missing_columns = [col for col in METRICS_COLUMNS if col not in dataframe]
    extra_columns = [col for col in dataframe.columns if col not in METRICS_COLUMNS]
    if missing_columns or extra_columns:
        raise ValueError(
            "Metrics dataframe columns mismatch. "
            f"Missing: {missing_columns or 'none'}, extra: {extra_columns or 'none'}."
        )

    metric_keys = set(dataframe["metric_key"].dropna())
    _raise_if_missing(metric_keys, REQUIRED_CIRCULARITY_METRIC_KEYS, "circularity metrics")
    _raise_if_missing(metric_keys, REQUIRED_EMISSIONS_METRIC_KEYS, "emissions metrics")
    _raise_if_missing(metric_keys, REQUIRED_WASTE_METRIC_KEYS, "waste metrics")

    duplicated = dataframe.loc[dataframe["metric_key"].duplicated(), "metric_key"].tolist()
    if duplicated:
        raise ValueError(f"Duplicate metric keys: {sorted(set(duplicated))}.")

    values = pd.to_numeric(dataframe["value"], errors="coerce")
    non_numeric = dataframe.loc[values.isna(), "metric_key"].tolist()
    if non_numeric:
        raise ValueError(f"Non-numeric metric values: {sorted(non_numeric)}.")

    _validate_percent_metrics(dict(zip(dataframe["metric_key"], values)))


def _raise_if_missing(
    available_keys: Iterable[str],
    required_keys: Iterable[str],
    label: str,
) -> None:
    missing = set(required_keys) - set(available_keys)
    if missing:
        raise ValueError(f"Missing required {label}: {sorted(missing)}.")


def _validate_percent_metrics(values: Mapping[str, float]) -> None:
    for metric_key, requirements in PERCENT_METRIC_REQUIREMENTS.items():
        if metric_key not in values:
            continue
        for role in ("numerator_keys", "denominator_keys"):
            for required in requirements[role]:
                if required not in values:
                    raise ValueError(
                        f"Percent metric '{metric_key}' missing {role.split('_')[0]} metric '{required}'."
                    )
        if values[metric_key] < 0:
            raise ValueError(f"Percent metric '{metric_key}' must not be negative: {values[metric_key]}.")
