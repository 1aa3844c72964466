"""
Per-client data corrections.

Some clients have reconciled waste figures that differ from the sum of their
monthly records. Those figures live in ``config.yaml`` under
``data_corrections.waste_summary`` and are applied to the computed summary
before a report is rendered. Each applied correction is logged and recorded
on the summary.
"""

from dataclasses import replace
from typing import Any, Dict, Mapping, Optional

from loguru import logger

from config.config import get_data_corrections
from circularity.models.records import MetricsBundle, WasteSummary

# Config key -> (WasteSummary attribute, label used in report notes)
CORRECTABLE_FIELDS = {
    'total_waste_kg': ('total_waste', 'Total de Residuos', 'kg'),
    'landfill_diversion_pct': ('landfill_diversion_pct', 'Índice de Desviación', '%'),
}

NON_VALUE_KEYS = {'reason'}


def apply_waste_summary_corrections(
    client_id: int,
    summary: WasteSummary,
    corrections: Optional[Mapping[int, Mapping[str, Any]]] = None,
) -> WasteSummary:
    """
    Apply the configured corrections for one client.

    Args:
        client_id: Client whose summary is being reported
        summary: Summary computed from the client's records
        corrections: Corrections keyed by client id (defaults to config)

    Returns:
        The corrected summary, or ``summary`` unchanged if the client has none
    """
    if corrections is None:
        corrections = get_data_corrections()

    entry = corrections.get(client_id)
    if not entry:
        return summary

    unknown = set(entry) - set(CORRECTABLE_FIELDS) - NON_VALUE_KEYS
    if unknown:
        raise ValueError(f"Unsupported correction fields for client {client_id}: {sorted(unknown)}")

    reason = entry.get('reason', 'sin motivo registrado')
    changes: Dict[str, float] = {}
    notes = []
    for key, (attribute, label, unit) in CORRECTABLE_FIELDS.items():
        if key not in entry:
            continue
        try:
            corrected = float(entry[key])
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Correction '{key}' for client {client_id} must be numeric.") from exc

        computed = getattr(summary, attribute)
        changes[attribute] = corrected
        notes.append(f"{label} ajustado de {computed:.2f} a {corrected:.2f} {unit} ({reason})")
        logger.warning(
            f"Client {client_id}: overriding {attribute} {computed:.2f} -> {corrected:.2f} ({reason})"
        )

    return replace(summary, corrections=summary.corrections + tuple(notes), **changes)


def apply_summary_to_bundle(bundle: MetricsBundle, summary: WasteSummary) -> MetricsBundle:
    """
    Carry a corrected waste summary into the metrics bundle.

    The reconciled total and diversion index replace the record-derived ones
    and the correction notes are appended, so every composer prints the same
    figures its "Notas" section describes. An uncorrected summary leaves the
    bundle as it is.
    """
    if not summary.corrections:
        return bundle

    return replace(
        bundle,
        total_waste_override=summary.total_waste,
        landfill_diversion_override=summary.landfill_diversion_pct,
        notes=bundle.notes + summary.corrections,
    )
