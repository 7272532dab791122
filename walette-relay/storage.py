from typing import Dict, List, Optional, Tuple

from errors import FlowAlreadyOpen
from models import FlowKind, FlowRecord, FlowState, FlowView

FlowKey = Tuple[FlowKind, str]


class FlowStore:
    """In-memory flow records keyed by (kind, correlation id).

    Nothing survives a restart; records are only mutated by whoever holds the
    record's lock.
    """

    def __init__(self):
        self._flows: Dict[FlowKey, FlowRecord] = {}

    def open(self, kind: FlowKind, correlation_id: str) -> FlowRecord:
        """Start tracking a flow. Only a failed flow may be opened again."""
        existing = self._flows.get((kind, correlation_id))
        if existing is not None and existing.state != FlowState.FAILED:
            raise FlowAlreadyOpen(kind, correlation_id)
        record = FlowRecord(kind=kind, correlation_id=correlation_id)
        self._flows[(kind, correlation_id)] = record
        return record

    def get(self, kind: FlowKind, correlation_id: str) -> Optional[FlowRecord]:
        return self._flows.get((kind, correlation_id))

    def list(self) -> List[FlowRecord]:
        return list(self._flows.values())

    def views(self) -> List[FlowView]:
        return [
            FlowView(
                kind=r.kind,
                correlation_id=r.correlation_id,
                state=r.state,
                transport_string=r.transport_string,
                has_result=r.result is not None,
                error=r.error,
                updated_at=r.updated_at,
            )
            for r in self._flows.values()
        ]

    def pending(self) -> List[FlowRecord]:
        return [r for r in self._flows.values() if r.state == FlowState.AWAITING_COMPLETION]
