"""
Main Pipeline for Circular Traceability Reporting

Loads traceability records, aggregates them for one client (or the whole
portfolio) and writes exports, standard reports, the dashboard dataset and
charts.
"""

import argparse
import re
import sys
from pathlib import Path

from loguru import logger

from config.config import DATA_OUTPUTS_DIR, ensure_directories, get_emission_factors, get_reporting_params
from circularity.acquisition.data_source import JsonRepository, LotFilter
from circularity.analysis.aggregation import (
    build_metrics_bundle,
    detailed_emissions_series,
    flow_type_distribution,
    monthly_waste_breakdown,
)
from circularity.cleaning.data_corrections import apply_summary_to_bundle, apply_waste_summary_corrections
from circularity.reporting.client_report import generate_client_report, report_period, summarize_waste
from circularity.reporting.dashboard_data_builder import DashboardDataBuilder
from circularity.reporting.file_export import format_waste_records_for_export, write_csv, write_excel
from circularity.reporting.metrics_table import METRICS_SHEET_NAME, build_metrics_dataframe
from circularity.reporting.report_composers import get_composer, render_markdown, render_text
from circularity.reporting.report_pdf import render_pdf
from circularity.reporting.visualizations import ChartRenderer
from circularity.utils.errors import EmptyInputError
from circularity.utils.run_log import RunLog


def setup_logging(log_file: Path = None):
    """
    Configure logging for the pipeline.

    Args:
        log_file: Optional path to log file
    """
    logger.remove()

    logger.add(
        sys.stderr,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <level>{message}</level>",
        level="INFO"
    )

    if log_file:
        logger.add(
            log_file,
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {message}",
            level="DEBUG",
            rotation="10 MB"
        )


def _slug(text: str) -> str:
    return re.sub(r'\s+', '_', text.strip()) or "portfolio"


def run_loading_phase(args, run_log: RunLog):
    """Load and validate the record dataset, then select the client's records."""
    logger.info("=" * 70)
    logger.info("PHASE 1: LOAD & VALIDATE RECORDS")
    logger.info("=" * 70)
    run_log.start_phase("Load Records", "Parse the JSON dataset and drop invalid records")

    repository = JsonRepository(args.data)
    repository.validator.log_validation_summary()

    client = None
    if args.client_id is not None or args.client:
        client = repository.get_client(client_id=args.client_id, name=args.client)
        if client is None:
            logger.warning(f"Client not found (name={args.client!r}, id={args.client_id!r})")

    owner = args.client or (client.name if client else None)
    lots = repository.fetch_lots(LotFilter(client_owner=owner))
    exhibitors = repository.fetch_exhibitors(client_owner=owner)
    waste_client_id = client.id if client else args.client_id
    waste_records = repository.fetch_waste_records(client_id=waste_client_id)

    run_log.add_metric('lots', len(lots), "Lots selected")
    run_log.add_metric('exhibitors', len(exhibitors), "Exhibitors selected")
    run_log.add_metric('waste_records', len(waste_records), "Waste records selected")
    run_log.add_metric('records_dropped',
                       repository.validation_report['total_records'] - repository.validation_report['records_passed'],
                       "Records removed by validation")
    run_log.complete_phase(success=True)

    logger.info(f"✓ Selected {len(lots)} lots, {len(exhibitors)} exhibitors, {len(waste_records)} waste records")
    return client, lots, exhibitors, waste_records, repository.fetch_clients()


def run_aggregation_phase(client, lots, exhibitors, waste_records, run_log: RunLog):
    """Aggregate records into the metrics bundle and the (corrected) waste summary."""
    logger.info("\n" + "=" * 70)
    logger.info("PHASE 2: AGGREGATION")
    logger.info("=" * 70)
    run_log.start_phase("Aggregation", "Build the metrics bundle shared by all reports")

    factors = get_emission_factors()
    bundle = build_metrics_bundle(lots, exhibitors, waste_records, factors['virgin_material'])

    summary = summarize_waste(waste_records)
    if client is not None:
        summary = apply_waste_summary_corrections(client.id, summary)
    bundle = apply_summary_to_bundle(bundle, summary)

    run_log.add_metric('emissions_generated', bundle.emissions_generated, "kgCO2e generated")
    run_log.add_metric('emissions_avoided', bundle.emissions_avoided, "kgCO2e avoided")
    run_log.add_metric('net_balance', bundle.net_balance, "Avoided minus generated")
    run_log.add_metric('landfill_diversion_pct', summary.landfill_diversion_pct, "Landfill diversion")
    run_log.complete_phase(success=True)

    logger.info(f"✓ Net emissions balance: {bundle.net_balance:,.2f} kgCO2e")
    return bundle, summary


def run_export_phase(args, client, waste_records, clients, bundle, run_log: RunLog):
    """Write waste exports, the headline metrics workbook and the client report."""
    logger.info("\n" + "=" * 70)
    logger.info("PHASE 3: EXPORTS")
    logger.info("=" * 70)
    run_log.start_phase("Exports", "CSV/XLSX exports and the client waste report")

    exports_dir = args.output_dir / "exports"
    base_name = f"residuos_{_slug(client.name if client else 'portfolio')}"

    rows = format_waste_records_for_export(waste_records, clients)
    if rows:
        run_log.add_output(write_csv(rows, base_name, exports_dir), "csv", "Waste records")
        run_log.add_output(write_excel(rows, base_name, exports_dir), "xlsx", "Waste records")
    else:
        logger.warning("No waste records to export")

    metrics_df = build_metrics_dataframe(bundle)
    metrics_path = write_excel(metrics_df.to_dict(orient='records'), f"{base_name}_metricas",
                               exports_dir, sheet_name=METRICS_SHEET_NAME)
    run_log.add_output(metrics_path, "xlsx", "Headline metrics")

    if client is not None:
        try:
            report_path = generate_client_report(client, waste_records, args.output_dir / "reports")
            run_log.add_output(report_path, "csv", "Client waste report")
        except EmptyInputError as e:
            logger.warning(f"Client report skipped: {e}")

    run_log.complete_phase(success=True)


def run_reporting_phase(args, company, period, bundle, run_log: RunLog):
    """Compose and render one report per requested standard."""
    logger.info("\n" + "=" * 70)
    logger.info("PHASE 4: STANDARD REPORTS")
    logger.info("=" * 70)
    run_log.start_phase("Standard Reports", f"Compose {', '.join(args.standards)} reports")

    reports_dir = args.output_dir / "reports"
    reports_dir.mkdir(parents=True, exist_ok=True)

    for standard in args.standards:
        document = get_composer(standard).compose(company, period, bundle)
        stem = f"{document.standard}_{_slug(company)}"

        markdown_path = reports_dir / f"{stem}.md"
        markdown_path.write_text(render_markdown(document), encoding='utf-8')
        text_path = reports_dir / f"{stem}.txt"
        text_path.write_text(render_text(document), encoding='utf-8')
        pdf_path = render_pdf(document, reports_dir / f"{stem}.pdf")

        run_log.add_output(markdown_path, "markdown", f"{document.title} report")
        run_log.add_output(text_path, "text", f"{document.title} report (plain text)")
        run_log.add_output(pdf_path, "pdf", f"{document.title} report (printable)")
        logger.info(f"✓ {document.standard} report saved to: {markdown_path}")

    run_log.complete_phase(success=True)


def run_dashboard_phase(args, lots, exhibitors, waste_records, run_log: RunLog):
    """Write the dashboard dataset and, unless disabled, the PNG charts."""
    logger.info("\n" + "=" * 70)
    logger.info("PHASE 5: DASHBOARD DATA & CHARTS")
    logger.info("=" * 70)
    run_log.start_phase("Dashboard", "Dashboard JSON payload and static charts")

    builder = DashboardDataBuilder(args.output_dir)
    dataset = builder.build_dataset(lots, exhibitors, waste_records)
    run_log.add_output(builder.write_dataset(dataset), "json", "Dashboard dataset")

    if args.no_charts:
        run_log.complete_phase(success=True, message="Charts disabled")
        return

    renderer = ChartRenderer(args.output_dir / "figures")
    run_log.add_output(renderer.plot_flow_type_distribution(flow_type_distribution(lots)), "png")

    factors = get_emission_factors()
    for exhibitor in exhibitors:
        series = detailed_emissions_series(
            exhibitor.graphic_history, factors['virgin_material'], factors['business_as_usual']
        )
        chart = renderer.plot_emissions_per_cycle(series, exhibitor.id)
        if chart:
            run_log.add_output(chart, "png")

    chart = renderer.plot_monthly_waste(monthly_waste_breakdown(waste_records))
    if chart:
        run_log.add_output(chart, "png")

    run_log.complete_phase(success=True)


def main():
    """Main execution function."""
    parser = argparse.ArgumentParser(
        description="Circular Traceability Reporting Pipeline"
    )

    parser.add_argument(
        '--data',
        type=Path,
        default=None,
        help='Path to the JSON record dataset (default: data/sample/records.json)'
    )

    parser.add_argument(
        '--client',
        default=None,
        help='Client name; filters lots and exhibitors by owner'
    )

    parser.add_argument(
        '--client-id',
        type=int,
        default=None,
        help='Client id for waste records and the client report'
    )

    parser.add_argument(
        '--standards',
        nargs='+',
        default=None,
        help='Reporting standards to compose (default from config: ESR GRI NIS GHG)'
    )

    parser.add_argument(
        '--output-dir',
        type=Path,
        default=DATA_OUTPUTS_DIR,
        help='Directory for all outputs (default: data/outputs)'
    )

    parser.add_argument('--company', default=None, help='Company name shown on reports')
    parser.add_argument('--period', default=None, help='Reporting period shown on reports')
    parser.add_argument('--no-charts', action='store_true', help='Skip PNG chart rendering')

    parser.add_argument(
        '--log-file',
        type=Path,
        default=Path('pipeline.log'),
        help='Path to log file (default: pipeline.log)'
    )

    args = parser.parse_args()

    setup_logging(args.log_file)

    ensure_directories(args.output_dir)
    reporting = get_reporting_params()
    args.standards = args.standards or reporting['standards']

    logger.info("=" * 70)
    logger.info("CIRCULAR TRACEABILITY REPORTING PIPELINE")
    logger.info("=" * 70)

    run_log = RunLog(args.output_dir)
    run_log.set_metadata('data_source', str(args.data) if args.data else 'sample dataset')

    try:
        client, lots, exhibitors, waste_records, clients = run_loading_phase(args, run_log)
        bundle, summary = run_aggregation_phase(client, lots, exhibitors, waste_records, run_log)

        company = args.company or (client.name if client else args.client) or "Portafolio"
        period = args.period or report_period(summary)
        run_log.set_metadata('company', company)
        run_log.set_metadata('period', period)

        run_export_phase(args, client, waste_records, clients, bundle, run_log)
        run_reporting_phase(args, company, period, bundle, run_log)
        run_dashboard_phase(args, lots, exhibitors, waste_records, run_log)
    except (FileNotFoundError, ValueError) as e:
        logger.error(f"Pipeline failed: {e}")
        if run_log.current_phase is not None:
            run_log.complete_phase(success=False, message=str(e))
        run_log.save_log()
        sys.exit(1)

    run_log.save_log()

    logger.info("\n" + "=" * 70)
    logger.info("PIPELINE COMPLETE")
    logger.info("=" * 70)


if __name__ == "__main__":
    main()
