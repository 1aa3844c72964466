"""
Run log for the reporting pipeline.

Each pipeline phase is kept as a plain dict (status, timings, metrics and
output files) so the whole run can be dumped to JSON next to the readable
text log.
"""

from dataclasses import asdict, is_dataclass
from datetime import date, datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional
import json

import numpy as np
import pandas as pd
from loguru import logger

RULE_WIDTH = 80

STATUS_LABELS = {
    'in_progress': '⋯ IN PROGRESS',
    'completed': '✓ COMPLETED',
    'failed': '✗ FAILED',
    'skipped': '⊘ SKIPPED',
}


def convert_to_json_serializable(obj: Any) -> Any:
    """
    Recursively turn numpy scalars/arrays, enums, dates, paths, record
    dataclasses and DataFrames into plain JSON values.
    """
    if isinstance(obj, dict):
        return {key: convert_to_json_serializable(value) for key, value in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [convert_to_json_serializable(item) for item in obj]
    if isinstance(obj, pd.DataFrame):
        return convert_to_json_serializable(obj.to_dict(orient="records"))
    if is_dataclass(obj) and not isinstance(obj, type):
        return convert_to_json_serializable(asdict(obj))
    if isinstance(obj, np.ndarray):
        return convert_to_json_serializable(obj.tolist())
    if isinstance(obj, np.generic):
        return obj.item()
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, Path):
        return str(obj)
    return obj


def _format_metric_value(value: Any) -> str:
    if isinstance(value, bool):
        return str(value)
    if isinstance(value, int):
        return f"{value:,}"
    if isinstance(value, float):
        return f"{value:,.0f}" if abs(value) >= 1000 else f"{value:.2f}"
    return str(value)


def _new_phase(number: int, name: str, description: str, status: str) -> Dict[str, Any]:
    stamp = datetime.now().isoformat()
    return {
        'phase_number': number,
        'phase_name': name,
        'description': description,
        'start_time': stamp,
        'end_time': stamp if status == 'skipped' else None,
        'duration_seconds': 0 if status == 'skipped' else None,
        'status': status,
        'success': None,
        'message': "",
        'metrics': {},
        'outputs': [],
    }


def _rule(char: str = "-") -> str:
    return char * RULE_WIDTH


class RunLog:
    """
    Records each pipeline phase with its status, metrics and output files,
    and writes a text plus JSON log at the end of the run.
    """

    def __init__(self, output_dir: Optional[Path] = None):
        if output_dir is None:
            from config.config import DATA_OUTPUTS_DIR
            output_dir = DATA_OUTPUTS_DIR

        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)

        self.start_time = datetime.now()
        self.phases: List[Dict[str, Any]] = []
        self.current_phase: Optional[Dict[str, Any]] = None
        self.metadata: Dict[str, Any] = {
            'run_start': self.start_time.isoformat(),
            'run_type': 'Circular Traceability Reporting',
        }

    def _active(self, action: str) -> Optional[Dict[str, Any]]:
        if self.current_phase is None:
            logger.warning(f"Cannot {action} - no active phase")
        return self.current_phase

    def start_phase(self, phase_name: str, description: str = ""):
        """
        Open a new phase. A phase still in progress is closed as successful first.

        Args:
            phase_name: Short phase label, e.g. "Load Records"
            description: What the phase does
        """
        if self.current_phase is not None:
            self.complete_phase(success=True, message="Auto-completed")

        self.current_phase = _new_phase(len(self.phases) + 1, phase_name, description, 'in_progress')
        logger.info(f"Starting phase {self.current_phase['phase_number']}: {phase_name}")

    def add_metric(self, key: str, value: Any, description: str = ""):
        phase = self._active(f"add metric '{key}'")
        if phase is not None:
            phase['metrics'][key] = {'value': value, 'description': description}

    def add_output(self, output_path, output_type: str = "file", description: str = ""):
        phase = self._active(f"add output '{output_path}'")
        if phase is not None:
            phase['outputs'].append({'path': str(output_path), 'type': output_type, 'description': description})

    def complete_phase(self, success: bool = True, message: str = ""):
        """Close the active phase, recording its duration and outcome."""
        phase = self._active("complete phase")
        if phase is None:
            return

        finished = datetime.now()
        elapsed = (finished - datetime.fromisoformat(phase['start_time'])).total_seconds()
        phase.update(
            end_time=finished.isoformat(),
            duration_seconds=elapsed,
            status='completed' if success else 'failed',
            success=success,
            message=message,
        )
        self.phases.append(phase)
        self.current_phase = None

        log = logger.info if success else logger.error
        log(f"{STATUS_LABELS[phase['status']]}: phase {phase['phase_number']} "
            f"{phase['phase_name']} ({elapsed:.1f}s)")

    def skip_phase(self, phase_name: str, reason: str = ""):
        phase = _new_phase(len(self.phases) + 1, phase_name, "", 'skipped')
        phase['message'] = reason
        self.phases.append(phase)
        logger.info(f"{STATUS_LABELS['skipped']}: {phase_name} ({reason})")

    def set_metadata(self, key: str, value: Any):
        self.metadata[key] = value

    def _phase_block(self, phase: Dict[str, Any]) -> List[str]:
        block = ["", f"Phase {phase['phase_number']}: {phase['phase_name']}", _rule()]
        if phase['description']:
            block.append(f"Description: {phase['description']}")
        block.append(f"Status: {STATUS_LABELS.get(phase['status'], phase['status'].upper())}")
        if phase['message']:
            block.append(f"Message: {phase['message']}")
        if phase['duration_seconds'] is not None:
            block.append(f"Duration: {phase['duration_seconds']:.1f} seconds")

        if phase['metrics']:
            block += ["", "Metrics:"]
            for key, metric in phase['metrics'].items():
                suffix = f" - {metric['description']}" if metric['description'] else ""
                block.append(f"  • {key}: {_format_metric_value(metric['value'])}{suffix}")

        if phase['outputs']:
            block += ["", "Outputs Generated:"]
            for output in phase['outputs']:
                block.append(f"  • [{output['type']}] {output['path']}")
                if output['description']:
                    block.append(f"    {output['description']}")
        return block

    def generate_text_summary(self) -> str:
        """Readable run report: metadata, phase counts, then one block per phase."""
        stats = self.get_summary_stats()

        lines = [_rule("="), "RUN LOG - Circular Traceability Reporting", _rule("="), "", "RUN METADATA", _rule()]
        lines += [f"{key}: {value}" for key, value in self.metadata.items()]
        lines += [
            "",
            "PHASE SUMMARY",
            _rule(),
            f"Total Phases: {stats['total_phases']}",
            f"  Successful: {stats['successful_phases']}",
            f"  Failed: {stats['failed_phases']}",
            f"  Skipped: {stats['skipped_phases']}",
            "",
            "DETAILED PHASE INFORMATION",
            _rule("="),
        ]
        for phase in self.phases:
            lines += self._phase_block(phase)
        lines += ["", _rule("="), f"Run Log Generated: {datetime.now().isoformat()}", _rule("=")]
        return "\n".join(lines)

    def save_log(self, filename: str = "run_log.txt") -> Path:
        """
        Write the text log and a JSON twin with the same stem.

        Returns:
            Path to the text log
        """
        finished = datetime.now()
        self.metadata['run_end'] = finished.isoformat()
        self.metadata['total_duration_seconds'] = (finished - self.start_time).total_seconds()

        text_path = self.output_dir / filename
        text_path.write_text(self.generate_text_summary(), encoding='utf-8')

        payload = convert_to_json_serializable({'metadata': self.metadata, 'phases': self.phases})
        json_path = text_path.with_suffix('.json')
        json_path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding='utf-8')

        logger.info(f"Run log saved to: {text_path} (+ {json_path.name})")
        return text_path

    def get_summary_stats(self) -> Dict[str, Any]:
        outcomes = [phase['success'] for phase in self.phases]
        successful = outcomes.count(True)
        failed = outcomes.count(False)

        return {
            'total_phases': len(self.phases),
            'successful_phases': successful,
            'failed_phases': failed,
            'skipped_phases': sum(phase['status'] == 'skipped' for phase in self.phases),
            'total_duration_seconds': sum(phase['duration_seconds'] or 0 for phase in self.phases),
            'overall_success': failed == 0 and successful > 0,
        }
