"""
Record Validation Module

Checks lots, exhibitors and waste records against the traceability record rules
before they reach the aggregation functions, which assume well-formed input.
Invalid records are dropped and counted, or rejected outright in strict mode.
"""

import math
import numbers
from typing import Dict, Iterable, List, Sequence, Tuple

from loguru import logger

from circularity.models.records import (
    EXHIBITOR_CONDITIONS,
    EXHIBITOR_STATUSES,
    LOT_STATUSES,
    RECYCLED_INTO_TARGETS,
    Cycle,
    Exhibitor,
    FlowType,
    Lot,
    WasteRecord,
)
from circularity.utils.errors import RecordValidationError


def _is_real(value) -> bool:
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        return False
    return not (math.isnan(value) or math.isinf(value))


class RecordValidator:
    """
    Validates traceability records against the traceability record rules.
    """

    # Cycle emissions are stored rounded to 2 dp, so allow a small drift
    EMISSIONS_TOLERANCE = 0.01

    def __init__(self, strict: bool = False):
        """
        Initialize the validator.

        Args:
            strict: Raise RecordValidationError on the first invalid record
                instead of dropping it
        """
        self.strict = strict
        self.validation_report = {
            'total_records': 0,
            'invalid_values': 0,
            'invalid_cycle_counters': 0,
            'invalid_cycle_sequences': 0,
            'multiple_open_cycles': 0,
            'misplaced_open_cycles': 0,
            'emissions_mismatches': 0,
            'invalid_dates': 0,
            'cycle_count_mismatches': 0,
            'unparseable_records': 0,
            'records_passed': 0,
        }

    def validate_lots(self, lots: Iterable[Lot]) -> Tuple[List[Lot], Dict]:
        """
        Run every lot check and keep the lots that pass.

        Args:
            lots: Lots loaded from a data source

        Returns:
            Tuple of (valid lots, validation report)
        """
        return self._validate(lots, self.lot_issues, "lots")

    def validate_exhibitors(self, exhibitors: Iterable[Exhibitor]) -> Tuple[List[Exhibitor], Dict]:
        return self._validate(exhibitors, self.exhibitor_issues, "exhibitors")

    def validate_waste_records(self, records: Iterable[WasteRecord]) -> Tuple[List[WasteRecord], Dict]:
        return self._validate(records, self.waste_record_issues, "waste records")

    def _validate(self, records, check, label: str):
        records = list(records)
        self.validation_report['total_records'] += len(records)
        logger.info(f"Validating {len(records):,} {label}...")

        passed = []
        for record in records:
            issues = check(record)
            if not issues:
                passed.append(record)
                continue

            message = "; ".join(issues)
            if self.strict:
                raise RecordValidationError(message, record_id=str(record.id))
            logger.warning(f"Dropping {label[:-1]} {record.id}: {message}")

        self.validation_report['records_passed'] += len(passed)
        dropped = len(records) - len(passed)
        if dropped:
            logger.warning(f"Removed {dropped:,} invalid {label}")
        logger.info(f"✓ {len(passed):,}/{len(records):,} {label} passed validation")

        return passed, self.validation_report

    def reject_unparsed(self, label: str, error: RecordValidationError):
        """
        Count a raw record that could not be turned into a model record.

        Re-raises ``error`` in strict mode; otherwise the record is dropped.
        """
        self.validation_report['total_records'] += 1
        self.validation_report['unparseable_records'] += 1
        if self.strict:
            raise error
        logger.warning(f"Dropping unparseable {label[:-1]}: {error}")

    def _flag(self, issues: List[str], key: str, message: str):
        self.validation_report[key] += 1
        issues.append(message)

    def lot_issues(self, lot: Lot) -> List[str]:
        """Return a description of every rule the lot breaks."""
        issues: List[str] = []

        for field_name in ('weight', 'recycled_content', 'total_emissions_avoided', 'total_plastic_recycled'):
            value = getattr(lot, field_name)
            if not _is_real(value) or value < 0:
                self._flag(issues, 'invalid_values', f"{field_name} must be a non-negative number, got {value!r}")

        if _is_real(lot.recycled_content) and lot.recycled_content > 100:
            self._flag(issues, 'invalid_values', "recycled_content exceeds 100%")

        if lot.status not in LOT_STATUSES:
            self._flag(issues, 'invalid_values', f"unknown status {lot.status!r}")

        try:
            FlowType(lot.flow_type)
        except ValueError:
            self._flag(issues, 'invalid_values', f"unknown flow type {lot.flow_type!r}")

        counters_are_ints = all(
            isinstance(value, int) and not isinstance(value, bool)
            for value in (lot.current_cycle, lot.total_cycles)
        )
        if not counters_are_ints:
            self._flag(issues, 'invalid_values', "cycle counters must be integers")
        elif lot.current_cycle > lot.total_cycles or lot.current_cycle < 0:
            self._flag(
                issues,
                'invalid_cycle_counters',
                f"current_cycle {lot.current_cycle} outside 0..{lot.total_cycles}",
            )
        elif len(lot.cycles) != lot.current_cycle:
            # Not fatal: histories can lag behind the counter
            self.validation_report['cycle_count_mismatches'] += 1
            logger.debug(f"Lot {lot.id}: {len(lot.cycles)} cycle records for current_cycle {lot.current_cycle}")

        issues.extend(self.cycle_issues(lot.cycles))
        return issues

    def cycle_issues(self, cycles: Sequence[Cycle]) -> List[str]:
        """Check numbering, open-cycle placement, dates and emissions of a cycle history."""
        issues: List[str] = []
        numbers_seen = [cycle.number for cycle in cycles]

        if any(b <= a for a, b in zip(numbers_seen, numbers_seen[1:])):
            self._flag(issues, 'invalid_cycle_sequences', f"cycle numbers not strictly increasing: {numbers_seen}")
        if numbers_seen and min(numbers_seen) < 1:
            self._flag(issues, 'invalid_cycle_sequences', "cycle numbers must be 1-based")

        open_cycles = [cycle for cycle in cycles if cycle.is_active]
        if len(open_cycles) > 1:
            self._flag(issues, 'multiple_open_cycles', f"{len(open_cycles)} cycles without end date")
        elif open_cycles and open_cycles[0].number != max(numbers_seen):
            self._flag(
                issues,
                'misplaced_open_cycles',
                f"open cycle {open_cycles[0].number} is not the latest cycle",
            )

        for cycle in cycles:
            values = (cycle.emissions.transport, cycle.emissions.processing,
                      cycle.emissions.total, cycle.distance, cycle.weight)
            if not all(_is_real(value) and value >= 0 for value in values):
                self._flag(issues, 'invalid_values', f"cycle {cycle.number} has non-numeric or negative figures")
                continue

            drift = abs(cycle.emissions.transport + cycle.emissions.processing - cycle.emissions.total)
            if drift > self.EMISSIONS_TOLERANCE:
                self._flag(
                    issues,
                    'emissions_mismatches',
                    f"cycle {cycle.number} emissions total {cycle.emissions.total} "
                    f"!= transport + processing",
                )

            if cycle.end_date is not None and cycle.end_date < cycle.start_date:
                self._flag(issues, 'invalid_dates', f"cycle {cycle.number} ends before it starts")

        return issues

    def exhibitor_issues(self, exhibitor: Exhibitor) -> List[str]:
        issues: List[str] = []

        if exhibitor.condition not in EXHIBITOR_CONDITIONS:
            self._flag(issues, 'invalid_values', f"unknown condition {exhibitor.condition!r}")
        if exhibitor.status not in EXHIBITOR_STATUSES:
            self._flag(issues, 'invalid_values', f"unknown status {exhibitor.status!r}")
        if not isinstance(exhibitor.graphic_changes, int) or exhibitor.graphic_changes < 0:
            self._flag(issues, 'invalid_values', "graphic_changes must be a non-negative integer")
        if not _is_real(exhibitor.recycled_content) or not 0 <= exhibitor.recycled_content <= 100:
            self._flag(issues, 'invalid_values', "recycled_content must be within 0..100")

        for cycle in exhibitor.graphic_history:
            if cycle.recycled_into is not None and cycle.recycled_into not in RECYCLED_INTO_TARGETS:
                self._flag(issues, 'invalid_values', f"cycle {cycle.number} recycled into {cycle.recycled_into!r}")

        issues.extend(self.cycle_issues(exhibitor.graphic_history))
        return issues

    def waste_record_issues(self, record: WasteRecord) -> List[str]:
        issues: List[str] = []
        for field_name in ('organic_waste', 'inorganic_waste', 'recyclable_waste'):
            value = getattr(record, field_name)
            if not _is_real(value) or value < 0:
                self._flag(issues, 'invalid_values', f"{field_name} must be a non-negative number, got {value!r}")
        return issues

    def log_validation_summary(self):
        """Log a summary of validation results."""
        logger.info("=" * 60)
        logger.info("RECORD VALIDATION SUMMARY")
        logger.info("=" * 60)
        for key, value in self.validation_report.items():
            logger.info(f"{key.replace('_', ' ').capitalize()}: {value:,}")
        logger.info("=" * 60)
