"""
Sustainability Report Composers

Builds structured report documents for four reporting standards from one
pre-aggregated MetricsBundle:

- ESR CEMEFI (Empresa Socialmente Responsable)
- GRI Standards 301 / 305 / 306
- NIS México (Norma de Información de Sostenibilidad)
- GHG Protocol Scope 3

Every composer implements the same ``compose(company_name, period, metrics)``
interface, so callers can pick one by standard code and render it with
``render_markdown`` or ``render_text``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple, Type

from loguru import logger

from config.config import get_ghg_protocol_params, get_reporting_params
from circularity.models.records import MetricsBundle, safe_rate

COMPLIANT = "✓ Cumple"
PARTIAL = "◐ Parcial"


@dataclass(frozen=True)
class KPI:
    label: str
    value: str
    unit: str = ""
    highlight: bool = False


@dataclass(frozen=True)
class ReportTable:
    headers: Tuple[str, ...]
    rows: Tuple[Tuple[str, ...], ...]


@dataclass(frozen=True)
class ReportSection:
    """One titled block of a report: narrative lines, KPIs and tables."""

    title: str
    lines: Tuple[str, ...] = ()
    kpis: Tuple[KPI, ...] = ()
    tables: Tuple[ReportTable, ...] = ()


@dataclass(frozen=True)
class ReportDocument:
    standard: str
    title: str
    subtitle: str
    company: str
    period: str
    sections: Tuple[ReportSection, ...]
    platform_name: str = "Econova Platform"

    @property
    def footer(self) -> str:
        return f"{self.company} • {self.standard} • {self.period}"

    def section(self, title: str) -> Optional[ReportSection]:
        return next((s for s in self.sections if s.title == title), None)


def _num(value: float, decimals: int = 1) -> str:
    return f"{value:,.{decimals}f}"


def _tonnes(kg: float) -> str:
    return f"{kg / 1000:.1f}t"


def _table(headers: Sequence[str], rows: Sequence[Sequence[str]]) -> ReportTable:
    return ReportTable(tuple(headers), tuple(tuple(str(cell) for cell in row) for row in rows))


class ReportComposer(ABC):
    """Common shell for standard-specific report composers."""

    standard: str = ""
    title: str = ""
    subtitle: str = ""

    def __init__(self, platform_name: Optional[str] = None):
        self.platform_name = platform_name or get_reporting_params()['platform_name']

    def compose(self, company_name: str, period: str, metrics: MetricsBundle) -> ReportDocument:
        """
        Assemble the report document.

        Args:
            company_name: Reporting company shown on the cover and footer
            period: Free-text reporting period
            metrics: Pre-aggregated figures for the company

        Returns:
            ReportDocument with ordered sections
        """
        logger.debug(f"Composing {self.standard} report for {company_name} ({period})")
        sections = list(self.build_sections(metrics))

        if metrics.notes:
            sections.append(ReportSection(title="Notas", lines=tuple(metrics.notes)))

        return ReportDocument(
            standard=self.standard,
            title=self.title,
            subtitle=self.subtitle,
            company=company_name,
            period=period,
            sections=tuple(sections),
            platform_name=self.platform_name,
        )

    @abstractmethod
    def build_sections(self, metrics: MetricsBundle) -> List[ReportSection]:
        ...


class ESRCemefiComposer(ReportComposer):
    """ESR distinction report: social responsibility areas plus headline impact."""

    standard = "ESR"
    title = "ESR CEMEFI"
    subtitle = "Empresa Socialmente Responsable"

    AREAS = (
        ("Calidad de Vida", "CV", ("Capacitación sustentabilidad", "Condiciones seguras")),
        ("Ética Empresarial", "EE", ("Transparencia cadena", "Proveedores responsables")),
        ("Comunidad", "VC", ("Empleos en reciclaje", "Proveedores locales")),
        ("Medio Ambiente", "MA", ("Economía circular", "Reducción emisiones")),
    )

    def build_sections(self, metrics: MetricsBundle) -> List[ReportSection]:
        recycling_rate = safe_rate(metrics.recycled_kg, metrics.recycled_kg)

        return [
            ReportSection(
                title="Indicadores Clave",
                kpis=(
                    KPI("Exhibidores", str(metrics.exhibitors)),
                    KPI("Ciclos", str(metrics.cycles)),
                    KPI("Reciclado", _tonnes(metrics.recycled_kg), highlight=True),
                    KPI("CO₂ evitado", _num(metrics.emissions_avoided), "kg", highlight=True),
                ),
            ),
            ReportSection(
                title="Cumplimiento por Área",
                tables=(_table(
                    ["Área", "Código", "Cumplimiento"],
                    [(area, code, "100%") for area, code, _ in self.AREAS],
                ),),
            ),
            ReportSection(
                title="Indicadores",
                lines=tuple(
                    f"{area} ({code}): {', '.join(items)}" for area, code, items in self.AREAS
                ),
                tables=(_table(
                    ["Área", "Indicador", "Estado"],
                    [(area, item, COMPLIANT) for area, _, items in self.AREAS for item in items],
                ),),
            ),
            ReportSection(
                title="Impacto Ambiental",
                lines=(
                    f"{_num(metrics.emissions_avoided)} kg CO₂ evitadas con economía circular",
                    f"Tasa de reciclaje: {recycling_rate:.0f}%",
                ),
            ),
        ]


class GRIComposer(ReportComposer):
    """GRI 301 (materials), 305 (emissions) and 306 (waste) disclosures."""

    standard = "GRI"
    title = "GRI Standards"
    subtitle = "Global Reporting Initiative 2021"

    def build_sections(self, metrics: MetricsBundle) -> List[ReportSection]:
        recycled_pct = round(metrics.recycled_content_percent)
        virgin_pct = 100 - recycled_pct if metrics.total_materials_kg else 0
        total_pct = "100%" if metrics.total_materials_kg else "0%"
        traditional_scope3 = metrics.emissions_generated + metrics.emissions_avoided

        waste_lines = [
            f"{_num(metrics.recycled_kg)} kg reciclados",
            "100% reciclado • 0 kg a relleno sanitario",
            f"{metrics.cycles} ciclos cerrados",
        ]
        if metrics.total_waste_kg:
            waste_lines.append(
                f"Índice de desviación de relleno sanitario: {metrics.landfill_diversion_rate:.2f}%"
            )

        return [
            ReportSection(
                title="Indicadores Clave",
                kpis=(
                    KPI("GRI 301", _tonnes(metrics.total_materials_kg), "materiales"),
                    KPI("GRI 305", _num(metrics.net_balance), "kg CO₂e", highlight=True),
                    KPI("GRI 306", "0", "a relleno", highlight=True),
                ),
            ),
            ReportSection(
                title="GRI 301: Materiales",
                lines=(f"Contenido reciclado: {recycled_pct}%",),
                tables=(_table(
                    ["Material", "Cantidad", "%"],
                    [
                        ("HDPE reciclado", f"{_num(metrics.recycled_materials_kg)} kg", f"{recycled_pct}%"),
                        ("HDPE virgen", f"{_num(metrics.virgin_materials_kg)} kg", f"{virgin_pct}%"),
                        ("Total", f"{_num(metrics.total_materials_kg)} kg", total_pct),
                    ],
                ),),
            ),
            ReportSection(
                title="GRI 305: Emisiones",
                kpis=(
                    KPI("Generadas", _num(metrics.emissions_generated), "kg CO₂e"),
                    KPI("Evitadas", f"-{_num(metrics.emissions_avoided)}", "kg CO₂e", highlight=True),
                    KPI("Balance neto", _num(metrics.net_balance), "kg CO₂e", highlight=True),
                ),
                tables=(_table(
                    ["Emisiones Alcance 3 (kg CO₂e)", "Tradicional", "Circular"],
                    [("Total", _num(traditional_scope3), _num(metrics.emissions_generated))],
                ),),
            ),
            ReportSection(title="GRI 306: Residuos", lines=tuple(waste_lines)),
        ]


class NISMexicoComposer(ReportComposer):
    """NIS México report: four pillars, scenario analysis and targets."""

    standard = "NIS"
    title = "NIS México"
    subtitle = "Norma de Información de Sostenibilidad"

    PILLARS = (
        ("Gobernanza", "Supervisión trimestral"),
        ("Estrategia", "Economía circular"),
        ("Riesgos", "Monitoreo en tiempo real"),
        ("Métricas", "Trazabilidad completa"),
    )

    def __init__(self, platform_name: Optional[str] = None, recycled_content_target: Optional[float] = None):
        super().__init__(platform_name)
        if recycled_content_target is None:
            recycled_content_target = get_reporting_params().get('recycled_content_target_pct', 60)
        self.recycled_content_target = float(recycled_content_target)

    def build_sections(self, metrics: MetricsBundle) -> List[ReportSection]:
        recycled_pct = round(metrics.recycled_content_percent)
        target_status = COMPLIANT if recycled_pct >= self.recycled_content_target else PARTIAL

        return [
            ReportSection(
                title="Indicadores Clave",
                kpis=(
                    KPI("Exhibidores", str(metrics.exhibitors)),
                    KPI("Contenido reciclado", f"{recycled_pct}%", highlight=True),
                    KPI("Balance CO₂", _num(metrics.net_balance), "kg", highlight=True),
                ),
            ),
            ReportSection(
                title="Cumplimiento por Pilar",
                tables=(_table(
                    ["Pilar", "Estado", "Descripción"],
                    [(name, COMPLIANT, description) for name, description in self.PILLARS],
                ),),
            ),
            ReportSection(
                title="Análisis de Escenarios (Estrategia)",
                lines=(
                    "BAU (sin economía circular): exhibidores de un solo uso, "
                    "residuos a relleno sanitario, mayor huella de carbono",
                    f"Actual: {metrics.exhibitors} exhibidores circulares, 0% a relleno sanitario, "
                    f"-{_num(metrics.emissions_avoided)} kg CO₂",
                ),
            ),
            ReportSection(
                title="Métricas y Metas",
                tables=(_table(
                    ["Meta", "Valor actual", "Estado"],
                    [
                        ("100% exhibidores en economía circular", "100%", COMPLIANT),
                        (f"≥{self.recycled_content_target:.0f}% contenido reciclado", f"{recycled_pct}%", target_status),
                        ("0% residuos a relleno", "0%", COMPLIANT),
                    ],
                ),),
            ),
        ]


class GHGProtocolComposer(ReportComposer):
    """GHG Protocol Scope 3 inventory with the end-of-life recycling credit."""

    standard = "GHG"
    title = "Alcance 3"
    subtitle = "GHG Protocol Scope 3"

    def __init__(
        self,
        platform_name: Optional[str] = None,
        purchased_goods_share: Optional[float] = None,
        methodology: Optional[str] = None,
    ):
        super().__init__(platform_name)
        params = get_ghg_protocol_params()
        self.purchased_goods_share = (
            params['purchased_goods_share'] if purchased_goods_share is None else purchased_goods_share
        )
        self.methodology = methodology or params.get('methodology', 'EPA WARM v15')

    def scope3_categories(self, metrics: MetricsBundle) -> Dict[str, float]:
        """
        Scope 3 category figures in kgCO2e.

        Category 1 is the purchased-goods share of generated emissions,
        category 4 the upstream transport emissions, category 12 the
        end-of-life recycling credit (negative).
        """
        cat1 = metrics.emissions_generated * self.purchased_goods_share
        cat4 = metrics.transport_emissions
        cat5 = 0.0
        cat12 = -metrics.emissions_avoided
        gross = cat1 + cat4 + cat5
        return {
            'cat1': cat1,
            'cat4': cat4,
            'cat5': cat5,
            'cat12': cat12,
            'gross': gross,
            'net': gross + cat12,
        }

    def build_sections(self, metrics: MetricsBundle) -> List[ReportSection]:
        figures = self.scope3_categories(metrics)
        gross = figures['gross']

        def share(value: float) -> str:
            return f"{round(safe_rate(value, gross))}%"

        return [
            ReportSection(
                title="Resumen de Alcances",
                kpis=(
                    KPI("Alcance 1", "—"),
                    KPI("Alcance 2", "—"),
                    KPI("Alcance 3 Bruto", f"{gross:.0f}", "kg CO₂e"),
                    KPI("Alcance 3 Neto", f"{figures['net']:.0f}", "kg CO₂e", highlight=True),
                ),
            ),
            ReportSection(
                title="Desglose por Categoría",
                tables=(_table(
                    ["Cat.", "Descripción", "kg CO₂e", "%"],
                    [
                        ("1", "Bienes adquiridos", f"{figures['cat1']:.1f}", share(figures['cat1'])),
                        ("4", "Transporte upstream", f"{figures['cat4']:.1f}", share(figures['cat4'])),
                        ("5", "Residuos operaciones", "0", "0%"),
                        ("12", "Fin de vida (crédito)", f"{figures['cat12']:.0f}", "—"),
                    ],
                ),),
            ),
            ReportSection(
                title="Impacto de Economía Circular",
                lines=(
                    f"Sin economía circular: +{gross:.0f} kg CO₂e",
                    f"Con economía circular: {figures['net']:.0f} kg CO₂e",
                ),
            ),
            ReportSection(
                title="Crédito por Reciclaje (Cat. 12)",
                lines=(
                    f"{_num(metrics.emissions_avoided)} kg CO₂e evitados por reciclar "
                    f"{_num(metrics.recycled_kg)} kg de material",
                    f"Metodología: {self.methodology}",
                ),
            ),
        ]


COMPOSERS: Dict[str, Type[ReportComposer]] = {
    ESRCemefiComposer.standard: ESRCemefiComposer,
    GRIComposer.standard: GRIComposer,
    NISMexicoComposer.standard: NISMexicoComposer,
    GHGProtocolComposer.standard: GHGProtocolComposer,
}


def get_composer(standard: str, **kwargs) -> ReportComposer:
    """Instantiate the composer registered for a standard code (ESR, GRI, NIS, GHG)."""
    composer_class = COMPOSERS.get(standard.upper())
    if composer_class is None:
        raise ValueError(
            f"Unknown reporting standard '{standard}'. "
            f"Available: {', '.join(sorted(COMPOSERS))}"
        )
    return composer_class(**kwargs)


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------

def _kpi_text(kpi: KPI) -> str:
    return f"{kpi.label}: {kpi.value}" + (f" {kpi.unit}" if kpi.unit else "")


def render_markdown(document: ReportDocument) -> str:
    """Render a report document as Markdown."""
    lines = [
        f"# {document.title}",
        "",
        f"_{document.subtitle}_",
        "",
        f"**{document.company}** · Período de reporte: {document.period}",
        "",
    ]

    for section in document.sections:
        lines.extend([f"## {section.title}", ""])
        if section.kpis:
            lines.extend(f"- **{kpi.label}**: {kpi.value}" + (f" {kpi.unit}" if kpi.unit else "")
                         for kpi in section.kpis)
            lines.append("")
        if section.lines:
            lines.extend(section.lines)
            lines.append("")
        for table in section.tables:
            lines.append("| " + " | ".join(table.headers) + " |")
            lines.append("|" + "|".join(" --- " for _ in table.headers) + "|")
            lines.extend("| " + " | ".join(row) + " |" for row in table.rows)
            lines.append("")

    lines.extend(["---", "", document.footer, "", f"Generado por {document.platform_name}", ""])
    return "\n".join(lines)


def render_text(document: ReportDocument) -> str:
    """Render a report document as plain, printable text."""
    width = 70
    lines = [
        "=" * width,
        document.title.upper(),
        document.subtitle,
        f"{document.company} | Período de reporte: {document.period}",
        "=" * width,
        "",
    ]

    for section in document.sections:
        lines.extend([section.title.upper(), "-" * len(section.title)])
        lines.extend(_kpi_text(kpi) for kpi in section.kpis)
        lines.extend(section.lines)
        for table in section.tables:
            widths = [
                max(len(cell) for cell in column)
                for column in zip(table.headers, *table.rows)
            ]
            lines.append("  ".join(h.ljust(w) for h, w in zip(table.headers, widths)).rstrip())
            lines.extend(
                "  ".join(cell.ljust(w) for cell, w in zip(row, widths)).rstrip()
                for row in table.rows
            )
        lines.append("")

    lines.extend(["-" * width, document.footer, f"Generado por {document.platform_name}", ""])
    return "\n".join(lines)
