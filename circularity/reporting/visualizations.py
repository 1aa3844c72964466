"""
Reporting and Visualization Module

Creates static PNG charts for the emissions and waste figures shown on the
dashboard, for inclusion in printed reports.
"""

from pathlib import Path
from typing import Dict, Optional

import matplotlib.pyplot as plt
import pandas as pd
import seaborn as sns
from loguru import logger

from config.config import DATA_OUTPUTS_DIR, get_flow_type_catalog


class ChartRenderer:
    """
    Renders emissions and waste charts to PNG files.
    """

    def __init__(self, output_dir: Optional[Path] = None):
        """Initialize the chart renderer."""
        self.output_dir = Path(output_dir) if output_dir else DATA_OUTPUTS_DIR / "figures"
        self.output_dir.mkdir(parents=True, exist_ok=True)

        sns.set_style("whitegrid")
        plt.rcParams['figure.figsize'] = (12, 8)
        plt.rcParams['font.size'] = 11

        logger.info("Initialized Chart Renderer")

    def plot_emissions_per_cycle(
        self,
        series: pd.DataFrame,
        label: str,
        save_path: Optional[Path] = None
    ) -> Optional[Path]:
        """
        Stacked transport/processing bars per cycle with the cumulative net balance.

        Args:
            series: Output of detailed_emissions_series
            label: Exhibitor or lot id shown in the title
            save_path: Path to save figure

        Returns:
            Path of the saved figure, or None when there are no cycles
        """
        if series.empty:
            logger.warning(f"No cycles to chart for {label}")
            return None

        logger.info(f"Creating emissions per cycle chart for {label}...")
        if save_path is None:
            save_path = self.output_dir / f"emissions_per_cycle_{label}.png"

        fig, ax = plt.subplots(figsize=(12, 6))
        positions = range(len(series))
        ax.bar(positions, series['transport'], color='#F59E0B', edgecolor='black',
               linewidth=0.8, label='Transporte')
        ax.bar(positions, series['processing'], bottom=series['transport'], color='#EF4444',
               edgecolor='black', linewidth=0.8, label='Procesamiento')

        ax.set_xticks(list(positions))
        ax.set_xticklabels([f"C{int(n)}" for n in series['cycle_number']])
        ax.set_xlabel('Ciclo', fontsize=12, fontweight='bold')
        ax.set_ylabel('kg CO₂e por ciclo', fontsize=12, fontweight='bold')
        ax.set_title(f'Emisiones por ciclo\n{label}', fontsize=14, fontweight='bold', pad=20)

        balance_ax = ax.twinx()
        balance_ax.plot(positions, series['net_balance'], color='#10B981', marker='o',
                        linewidth=2, label='Balance neto acumulado')
        balance_ax.plot(positions, series['cumulative_bau'], color='#6B7280', linestyle='--',
                        linewidth=1.5, label='BAU acumulado')
        balance_ax.set_ylabel('kg CO₂e acumulado', fontsize=12, fontweight='bold')
        balance_ax.axhline(0, color='black', linewidth=0.8, alpha=0.5)

        handles, labels = ax.get_legend_handles_labels()
        balance_handles, balance_labels = balance_ax.get_legend_handles_labels()
        ax.legend(handles + balance_handles, labels + balance_labels, loc='upper left', fontsize=10)
        ax.set_axisbelow(True)

        plt.tight_layout()
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        plt.close(fig)

        logger.info(f"Saved emissions chart to: {save_path}")
        return save_path

    def plot_flow_type_distribution(
        self,
        distribution: Dict[str, int],
        save_path: Optional[Path] = None
    ) -> Path:
        """
        Bar chart of lots per circular-flow type, coloured per the flow catalog.

        Args:
            distribution: Output of flow_type_distribution
            save_path: Path to save figure
        """
        logger.info("Creating flow type distribution chart...")
        if save_path is None:
            save_path = self.output_dir / "flow_type_distribution.png"

        catalog = get_flow_type_catalog()
        names = [catalog.get(key, {}).get('name', key) for key in distribution]
        colors = [catalog.get(key, {}).get('color', '#9CA3AF') for key in distribution]
        counts = list(distribution.values())

        fig, ax = plt.subplots(figsize=(10, 6))
        bars = ax.bar(names, counts, color=colors, edgecolor='black', linewidth=1.2)

        for bar, count in zip(bars, counts):
            ax.text(bar.get_x() + bar.get_width() / 2., bar.get_height(), f'{count}',
                    ha='center', va='bottom', fontsize=10, fontweight='bold')

        ax.set_ylabel('Lotes', fontsize=12, fontweight='bold')
        ax.set_title('Distribución por tipo de flujo', fontsize=14, fontweight='bold', pad=20)
        ax.yaxis.grid(True, alpha=0.3)
        ax.set_axisbelow(True)
        ax.yaxis.set_major_locator(plt.MaxNLocator(integer=True))

        plt.tight_layout()
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        plt.close(fig)

        logger.info(f"Saved flow type distribution to: {save_path}")
        return save_path

    def plot_monthly_waste(
        self,
        monthly: pd.DataFrame,
        save_path: Optional[Path] = None
    ) -> Optional[Path]:
        """Stacked monthly waste by category (output of monthly_waste_breakdown)."""
        if monthly.empty:
            logger.warning("No waste records to chart")
            return None

        logger.info("Creating monthly waste chart...")
        if save_path is None:
            save_path = self.output_dir / "monthly_waste.png"

        plot_df = monthly.set_index('month')[['organic_waste', 'inorganic_waste', 'recyclable_waste']]
        plot_df.columns = ['Orgánicos', 'Inorgánicos', 'Reciclables']

        fig, ax = plt.subplots(figsize=(12, 6))
        plot_df.plot(kind='bar', stacked=True, ax=ax, color=['#10B981', '#6B7280', '#3B82F6'],
                     edgecolor='black', linewidth=0.8)

        ax.set_xlabel('Mes', fontsize=12, fontweight='bold')
        ax.set_ylabel('kg', fontsize=12, fontweight='bold')
        ax.set_title('Residuos por mes', fontsize=14, fontweight='bold', pad=20)
        ax.yaxis.set_major_formatter(plt.FuncFormatter(lambda x, p: f'{x:,.0f}'))
        ax.tick_params(axis='x', rotation=0)

        plt.tight_layout()
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        plt.close(fig)

        logger.info(f"Saved monthly waste chart to: {save_path}")
        return save_path
