"""
Configuration loader for the Circular Traceability Reporting project.

Paths are resolved from the repository root; every ``get_*`` helper reads
``config/config.yaml`` afresh and validates the section it returns.
"""

import yaml
from pathlib import Path
from typing import Dict, Any, Iterable, Optional

PROJECT_ROOT = Path(__file__).resolve().parent.parent

CONFIG_DIR = PROJECT_ROOT / "config"
DATA_DIR = PROJECT_ROOT / "data"
DATA_SAMPLE_DIR = DATA_DIR / "sample"
DATA_OUTPUTS_DIR = DATA_DIR / "outputs"

OUTPUT_SUBDIRS = ("exports", "reports", "figures", "dashboard")


def load_config(config_file: str = "config.yaml") -> Dict[str, Any]:
    """Read a YAML file from the config directory; an empty file yields ``{}``."""
    config_path = CONFIG_DIR / config_file
    if not config_path.is_file():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with config_path.open(encoding='utf-8') as handle:
        return yaml.safe_load(handle) or {}


def _positive_factor(section: Dict[str, Any], key: str, label: str) -> float:
    value = section.get(key)
    if value is None:
        raise ValueError(f"Missing {label} ({key}) in configuration.")

    try:
        factor = float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{label} must be numeric.") from exc

    if factor < 0:
        raise ValueError(f"{label} must not be negative.")
    return factor


def get_emission_factors() -> Dict[str, float]:
    """Get validated emission factors (kgCO2e per kg) from config."""
    config = load_config()
    factors = config.get('emission_factors', {})

    return {
        'virgin_material': _positive_factor(
            factors, 'virgin_material_kgco2e_per_kg', "Virgin material emission factor"
        ),
        'business_as_usual': _positive_factor(
            factors, 'business_as_usual_kgco2e_per_kg', "Business-as-usual emission factor"
        ),
    }


def get_environmental_impact_factors() -> Dict[str, float]:
    """Get recycling conversion factors (trees, water, energy) from config."""
    config = load_config()
    impact = config.get('environmental_impact', {})
    return {key: float(value) for key, value in impact.items()}


def get_ghg_protocol_params() -> Dict[str, Any]:
    """Get GHG Protocol Scope 3 parameters from config."""
    config = load_config()
    ghg = dict(config.get('ghg_protocol', {}))

    share = float(ghg.get('purchased_goods_share', 0.85))
    if not 0 <= share <= 1:
        raise ValueError("GHG purchased goods share must be between 0 and 1.")

    ghg['purchased_goods_share'] = share
    return ghg


def get_export_settings() -> Dict[str, Any]:
    """Get CSV/XLSX export settings from config."""
    config = load_config()
    export = config.get('export', {})
    return {
        'default_sheet_name': export.get('default_sheet_name', 'Datos de Residuos'),
        'csv_encoding': export.get('csv_encoding', 'utf-8-sig'),
        'date_format': export.get('date_format', '%d/%m/%Y'),
    }


def get_reporting_params() -> Dict[str, Any]:
    """Get report composition parameters from config."""
    config = load_config()
    reporting = dict(config.get('reporting', {}))
    reporting.setdefault('standards', ['ESR', 'GRI', 'NIS', 'GHG'])
    reporting['platform_name'] = config.get('project', {}).get('platform_name', 'Econova Platform')
    return reporting


def get_data_corrections() -> Dict[int, Dict[str, Any]]:
    """Get per-client waste summary corrections keyed by client id."""
    config = load_config()
    corrections = config.get('data_corrections', {}).get('waste_summary', {}) or {}
    return {int(client_id): dict(values) for client_id, values in corrections.items()}


def get_flow_type_catalog() -> Dict[str, Dict[str, str]]:
    """Get display names, descriptions and colours for each flow type."""
    config = load_config()
    return config.get('flow_types', {})


def ensure_directories(base_dir: Optional[Path] = None, subdirs: Iterable[str] = OUTPUT_SUBDIRS) -> Path:
    """Create the output root and its per-artifact subfolders."""
    base_dir = Path(base_dir) if base_dir is not None else DATA_OUTPUTS_DIR
    for name in ("", *subdirs):
        (base_dir / name).mkdir(parents=True, exist_ok=True)
    return base_dir
