import json
from pathlib import Path
import sys

import matplotlib
import pytest
from loguru import logger

matplotlib.use("Agg")

sys.path.append(str(Path(__file__).parent.parent))

import main as pipeline


def run_pipeline(monkeypatch, tmp_path, *extra_args):
    argv = [
        "main.py",
        "--output-dir", str(tmp_path),
        "--log-file", str(tmp_path / "pipeline.log"),
        *extra_args,
    ]
    monkeypatch.setattr(sys, "argv", argv)
    try:
        pipeline.main()
    finally:
        logger.remove()


def test_client_pipeline_writes_all_outputs(monkeypatch, tmp_path):
    run_pipeline(monkeypatch, tmp_path, "--client-id", "4", "--no-charts")

    exports = tmp_path / "exports"
    assert (exports / "residuos_Club_Campestre.csv").exists()
    assert (exports / "residuos_Club_Campestre.xlsx").exists()
    assert (exports / "residuos_Club_Campestre_metricas.xlsx").exists()

    reports = tmp_path / "reports"
    client_reports = list(reports.glob("Reporte_Club_Campestre_*.csv"))
    assert len(client_reports) == 1
    assert "Total de Residuos, 166918.28 kg" in client_reports[0].read_text(encoding="utf-8-sig")

    for standard in ("ESR", "GRI", "NIS", "GHG"):
        assert (reports / f"{standard}_Club_Campestre.md").exists()
        assert (reports / f"{standard}_Club_Campestre.pdf").exists()

    gri = (reports / "GRI_Club_Campestre.md").read_text(encoding="utf-8")
    assert "## Notas" in gri
    assert "enero de 2024 - marzo de 2024" in gri
    assert "Índice de desviación de relleno sanitario: 22.16%" in gri

    dataset = json.loads((tmp_path / "dashboard" / "dashboard-data.json").read_text(encoding="utf-8"))
    assert len(dataset["monthlyWasteData"]) == 3

    run_log = json.loads((tmp_path / "run_log.json").read_text(encoding="utf-8"))
    assert all(phase["success"] for phase in run_log["phases"])


def test_portfolio_pipeline_renders_charts(monkeypatch, tmp_path):
    run_pipeline(monkeypatch, tmp_path, "--client", "EGO", "--standards", "GHG", "--company", "EGO Displays")

    figures = tmp_path / "figures"
    assert (figures / "flow_type_distribution.png").exists()
    assert (figures / "emissions_per_cycle_EXH-EGO-001.png").exists()
    assert (figures / "monthly_waste.png").exists()
    assert (tmp_path / "reports" / "GHG_EGO_Displays.txt").exists()


def test_unknown_standard_exits_non_zero(monkeypatch, tmp_path):
    with pytest.raises(SystemExit) as excinfo:
        run_pipeline(monkeypatch, tmp_path, "--standards", "ISO", "--no-charts")

    assert excinfo.value.code == 1
    assert (tmp_path / "run_log.txt").exists()
