from pathlib import Path
import sys

import pytest

sys.path.append(str(Path(__file__).parent.parent))

from config import config


def test_emission_factors_are_loaded():
    factors = config.get_emission_factors()
    assert factors == {"virgin_material": 3.5, "business_as_usual": 4.2}


def test_negative_emission_factor_is_rejected(monkeypatch):
    monkeypatch.setattr(config, "load_config", lambda: {
        "emission_factors": {
            "virgin_material_kgco2e_per_kg": -1,
            "business_as_usual_kgco2e_per_kg": 4.2,
        }
    })

    with pytest.raises(ValueError, match="must not be negative"):
        config.get_emission_factors()


def test_missing_emission_factor_is_rejected(monkeypatch):
    monkeypatch.setattr(config, "load_config", lambda: {"emission_factors": {}})

    with pytest.raises(ValueError, match="Missing Virgin material emission factor"):
        config.get_emission_factors()


def test_ghg_share_must_be_a_fraction(monkeypatch):
    monkeypatch.setattr(config, "load_config", lambda: {"ghg_protocol": {"purchased_goods_share": 1.5}})

    with pytest.raises(ValueError, match="between 0 and 1"):
        config.get_ghg_protocol_params()


def test_export_settings_defaults(monkeypatch):
    monkeypatch.setattr(config, "load_config", lambda: {})

    assert config.get_export_settings() == {
        "default_sheet_name": "Datos de Residuos",
        "csv_encoding": "utf-8-sig",
        "date_format": "%d/%m/%Y",
    }


def test_reporting_params():
    params = config.get_reporting_params()

    assert params["standards"] == ["ESR", "GRI", "NIS", "GHG"]
    assert params["platform_name"] == "Econova Platform"
    assert params["recycled_content_target_pct"] == 60


def test_data_corrections_are_keyed_by_client_id():
    corrections = config.get_data_corrections()

    assert set(corrections) == {4}
    assert corrections[4]["total_waste_kg"] == 166918.28
    assert corrections[4]["landfill_diversion_pct"] == 22.16


def test_flow_type_catalog_covers_every_flow_type():
    catalog = config.get_flow_type_catalog()
    assert set(catalog) == {"graficos-exhibidores", "exhibidores-exhibidores", "graficos-graficos"}


def test_missing_config_file():
    with pytest.raises(FileNotFoundError):
        config.load_config("missing.yaml")


def test_ensure_directories_creates_output_tree(tmp_path):
    base = config.ensure_directories(tmp_path / "outputs")

    assert base == tmp_path / "outputs"
    for name in ("exports", "reports", "figures", "dashboard"):
        assert (base / name).is_dir()
