"""
Data access for traceability records.

Aggregation and reporting code receives its records from a RecordRepository
instead of module-level datasets, so the same core works on the bundled sample
file, test fixtures, or a future service-backed source.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from loguru import logger

from config.config import DATA_SAMPLE_DIR
from circularity.analysis.aggregation import filter_lots
from circularity.cleaning.record_validator import RecordValidator
from circularity.models.records import (
    Client,
    CurrentGraphic,
    Cycle,
    CycleEmissions,
    Exhibitor,
    FlowType,
    Location,
    Lot,
    WasteRecord,
)
from circularity.utils.errors import RecordValidationError

DEFAULT_DATASET_PATH = DATA_SAMPLE_DIR / "records.json"


@dataclass(frozen=True)
class LotFilter:
    client_owner: Optional[str] = None
    flow_type: Optional[str] = None
    status: Optional[str] = None


class RecordRepository(ABC):
    """Read-only access to lots, exhibitors, clients and waste records."""

    @abstractmethod
    def fetch_lots(self, lot_filter: Optional[LotFilter] = None) -> List[Lot]:
        ...

    @abstractmethod
    def fetch_exhibitors(self, client_owner: Optional[str] = None) -> List[Exhibitor]:
        ...

    @abstractmethod
    def fetch_waste_records(self, client_id: Optional[int] = None) -> List[WasteRecord]:
        ...

    @abstractmethod
    def fetch_clients(self) -> List[Client]:
        ...

    def get_lot(self, lot_id: str) -> Optional[Lot]:
        return next((lot for lot in self.fetch_lots() if lot.id == lot_id), None)

    def get_client(self, client_id: Optional[int] = None, name: Optional[str] = None) -> Optional[Client]:
        for client in self.fetch_clients():
            if client_id is not None and client.id == client_id:
                return client
            if name is not None and client.name == name:
                return client
        return None


class InMemoryRepository(RecordRepository):
    """Repository over collections already resident in memory."""

    def __init__(
        self,
        lots: Iterable[Lot] = (),
        exhibitors: Iterable[Exhibitor] = (),
        waste_records: Iterable[WasteRecord] = (),
        clients: Iterable[Client] = (),
    ):
        self._lots = tuple(lots)
        self._exhibitors = tuple(exhibitors)
        self._waste_records = tuple(waste_records)
        self._clients = tuple(clients)

    def fetch_lots(self, lot_filter: Optional[LotFilter] = None) -> List[Lot]:
        lot_filter = lot_filter or LotFilter()
        return filter_lots(
            self._lots,
            client_owner=lot_filter.client_owner,
            flow_type=lot_filter.flow_type,
            status=lot_filter.status,
        )

    def fetch_exhibitors(self, client_owner: Optional[str] = None) -> List[Exhibitor]:
        return [e for e in self._exhibitors if client_owner is None or e.client_owner == client_owner]

    def fetch_waste_records(self, client_id: Optional[int] = None) -> List[WasteRecord]:
        records = [r for r in self._waste_records if client_id is None or r.client_id == client_id]
        return sorted(records, key=lambda record: record.date)

    def fetch_clients(self) -> List[Client]:
        return list(self._clients)


class JsonRepository(InMemoryRepository):
    """
    Repository backed by a JSON dataset file.

    The file holds ``lots``, ``exhibitors``, ``wasteRecords`` and ``clients``
    arrays using the dashboard's camelCase field names. Records are validated
    on load; invalid ones are dropped (or rejected when ``strict`` is set).
    """

    def __init__(self, path: Optional[Path] = None, strict: bool = False):
        self.path = Path(path) if path else DEFAULT_DATASET_PATH
        if not self.path.exists():
            raise FileNotFoundError(f"Dataset file not found: {self.path}")

        logger.info(f"Loading traceability dataset from {self.path}")
        with open(self.path, 'r', encoding='utf-8') as f:
            payload = json.load(f)

        self.validator = RecordValidator(strict=strict)
        records = parse_dataset(payload, self.validator)
        lots, _ = self.validator.validate_lots(records['lots'])
        exhibitors, _ = self.validator.validate_exhibitors(records['exhibitors'])
        waste_records, report = self.validator.validate_waste_records(records['waste_records'])
        self.validation_report = report

        super().__init__(lots, exhibitors, waste_records, records['clients'])
        logger.info(
            f"Loaded {len(lots)} lots, {len(exhibitors)} exhibitors, "
            f"{len(waste_records)} waste records, {len(records['clients'])} clients"
        )


# ---------------------------------------------------------------------------
# JSON parsing
# ---------------------------------------------------------------------------

def _parse_date(value: Any, record_id: str, field_name: str) -> date:
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError as exc:
        raise RecordValidationError(
            f"Field '{field_name}' is not an ISO date: {value!r}",
            record_id=record_id,
            field=field_name,
            value=value,
        ) from exc


def _optional_date(value: Any, record_id: str, field_name: str) -> Optional[date]:
    return None if value is None else _parse_date(value, record_id, field_name)


def _require(raw: Mapping[str, Any], key: str, record_id: str) -> Any:
    if key not in raw:
        raise RecordValidationError(f"Missing field '{key}'", record_id=record_id, field=key)
    return raw[key]


def _parse_location(raw: Mapping[str, Any]) -> Location:
    return Location(
        store=raw.get('store', ''),
        address=raw.get('address', ''),
        city=raw.get('city', ''),
    )


def parse_cycle(raw: Mapping[str, Any], default_weight: float = 0.0) -> Cycle:
    number = raw.get('number', raw.get('cycleNumber'))
    record_id = raw.get('lotId') or f"cycle-{number}"
    emissions = _require(raw, 'emissions', record_id)

    return Cycle(
        number=number,
        start_date=_parse_date(_require(raw, 'startDate', record_id), record_id, 'startDate'),
        end_date=_optional_date(raw.get('endDate'), record_id, 'endDate'),
        client=raw.get('client', ''),
        brand=raw.get('brand', ''),
        campaign=raw.get('campaign', ''),
        location=_parse_location(raw.get('location', {})),
        emissions=CycleEmissions(
            transport=emissions.get('transport'),
            processing=emissions.get('processing'),
            total=emissions.get('total'),
        ),
        distance=raw.get('distance', 0),
        weight=raw.get('weight', default_weight),
        returned_to_origin=bool(raw.get('returnedToOrigin', False)),
        lot_id=raw.get('lotId'),
        recycled_into=raw.get('recycledInto'),
        source_from_lot_id=raw.get('sourceFromLotId'),
        recycled_to_lot_id=raw.get('recycledToLotId'),
        material_recovered=raw.get('materialRecovered', 0.0),
        material_sent=raw.get('materialSent', 0.0),
        savings_vs_virgin=raw.get('savingsVsVirgin', 0.0),
    )


def parse_lot(raw: Mapping[str, Any]) -> Lot:
    lot_id = _require(raw, 'id', '<lot>')
    weight = _require(raw, 'weight', lot_id)
    flow_type = _require(raw, 'flowType', lot_id)
    try:
        flow_type = FlowType(flow_type)
    except ValueError as exc:
        raise RecordValidationError(
            f"Unknown flow type {flow_type!r}", record_id=lot_id, field='flowType', value=flow_type
        ) from exc

    return Lot(
        id=lot_id,
        flow_type=flow_type,
        product_type=raw.get('productType', ''),
        weight=weight,
        recycled_content=_require(raw, 'recycledContent', lot_id),
        original_date=_parse_date(_require(raw, 'originalDate', lot_id), lot_id, 'originalDate'),
        current_cycle=_require(raw, 'currentCycle', lot_id),
        total_cycles=_require(raw, 'totalCycles', lot_id),
        total_emissions_avoided=_require(raw, 'totalEmissionsAvoided', lot_id),
        total_plastic_recycled=_require(raw, 'totalPlasticRecycled', lot_id),
        status=_require(raw, 'status', lot_id),
        client_owner=_require(raw, 'clientOwner', lot_id),
        cycles=tuple(parse_cycle(cycle, default_weight=weight) for cycle in raw.get('cycles', [])),
    )


def parse_exhibitor(raw: Mapping[str, Any]) -> Exhibitor:
    exhibitor_id = _require(raw, 'id', '<exhibitor>')
    graphic = raw.get('currentGraphic', {})

    return Exhibitor(
        id=exhibitor_id,
        client_owner=_require(raw, 'clientOwner', exhibitor_id),
        model=raw.get('model', ''),
        location=_parse_location(raw.get('location', {})),
        years_in_operation=raw.get('yearsInOperation', 0),
        graphic_changes=_require(raw, 'graphicChanges', exhibitor_id),
        current_graphic=CurrentGraphic(
            campaign=graphic.get('campaign', ''),
            installed_date=_parse_date(
                graphic.get('installedDate', raw.get('manufactureDate', '1970-01-01')),
                exhibitor_id,
                'currentGraphic.installedDate',
            ),
            client=graphic.get('client', ''),
            brand=graphic.get('brand', ''),
        ),
        condition=raw.get('condition', 'good'),
        status=raw.get('status', 'active'),
        recycled_content=raw.get('recycledContent', 0.0),
        graphic_history=tuple(parse_cycle(cycle) for cycle in raw.get('graphicHistory', [])),
    )


def parse_waste_record(raw: Mapping[str, Any]) -> WasteRecord:
    record_id = str(_require(raw, 'id', '<waste>'))
    return WasteRecord(
        id=raw['id'],
        client_id=_require(raw, 'clientId', record_id),
        date=_parse_date(_require(raw, 'date', record_id), record_id, 'date'),
        organic_waste=raw.get('organicWaste', 0.0),
        inorganic_waste=raw.get('inorganicWaste', 0.0),
        recyclable_waste=raw.get('recyclableWaste', raw.get('recyclables', 0.0)),
        location=raw.get('location'),
        observations=raw.get('observations') or "",
    )


def _parse_collection(raws: Iterable[Mapping[str, Any]], parser, label: str,
                      validator: Optional[RecordValidator]) -> tuple:
    parsed = []
    for raw in raws:
        try:
            parsed.append(parser(raw))
        except RecordValidationError as e:
            if validator is None:
                raise
            validator.reject_unparsed(label, e)
    return tuple(parsed)


def parse_dataset(
    payload: Mapping[str, Any],
    validator: Optional[RecordValidator] = None,
) -> Dict[str, Sequence]:
    """
    Parse a camelCase JSON payload into record tuples keyed by collection.

    Without a validator the first malformed record raises. With one, each
    malformed record is counted in its report and dropped (or re-raised when
    the validator is strict).
    """
    return {
        'lots': _parse_collection(payload.get('lots', []), parse_lot, "lots", validator),
        'exhibitors': _parse_collection(payload.get('exhibitors', []), parse_exhibitor, "exhibitors", validator),
        'waste_records': _parse_collection(
            payload.get('wasteRecords', []), parse_waste_record, "waste records", validator
        ),
        'clients': tuple(
            Client(id=raw['id'], name=raw['name']) for raw in payload.get('clients', [])
        ),
    }
