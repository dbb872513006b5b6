"""Status registry: total lookup over the configured status definitions.

The registry is built from a statuses snapshot (a list of dicts) and passed
explicitly into the lifecycle, filter and aggregation functions. Lookups never
fail: an unknown id resolves to a neutral default so that actions referencing
a deleted (or not yet delivered) status still render and aggregate.

Usage:
    from pdca.services.status_registry import StatusRegistry

    registry = StatusRegistry(statuses)
    registry.lookup("finalizado").is_end      # True
    registry.lookup("gone").label             # "gone"
"""

from __future__ import annotations

from dataclasses import dataclass

NONE = "none"
START = "start"
END = "end"
INPROGRESS = "inprogress"

NEUTRAL_COLOR = "#9CA3AF"

DEFAULT_STATUSES = [
    {"id": "pendiente", "label": "Pendiente", "color": "#EAB308", "type": NONE},
    {"id": "en_curso", "label": "En Curso", "color": "#3B82F6", "type": START},
    {"id": "pendiente_validar", "label": "Pendiente de Validar", "color": "#F97316", "type": NONE},
    {"id": "finalizado", "label": "Finalizado", "color": "#22C55E", "type": END},
    {"id": "descartado", "label": "Descartado", "color": "#6B7280", "type": END},
]


@dataclass(frozen=True)
class StatusConfig:
    id: str
    label: str
    color: str
    type: str = NONE
    known: bool = True

    @property
    def automation_type(self) -> str:
        """Type as seen by the date automation rule (``inprogress`` acts as ``none``)."""
        if self.type in (START, END):
            return self.type
        return NONE

    @property
    def is_start(self) -> bool:
        return self.automation_type == START

    @property
    def is_end(self) -> bool:
        return self.automation_type == END

    def to_dict(self) -> dict:
        return {"id": self.id, "label": self.label, "color": self.color, "type": self.type}

    @classmethod
    def from_dict(cls, data: dict) -> StatusConfig:
        return cls(
            id=str(data["id"]),
            label=data.get("label") or str(data["id"]),
            color=data.get("color") or NEUTRAL_COLOR,
            type=data.get("type") or NONE,
        )

    @classmethod
    def unknown(cls, status_id) -> StatusConfig:
        label = "" if status_id is None else str(status_id)
        return cls(id=label, label=label, color=NEUTRAL_COLOR, type=NONE, known=False)


class StatusRegistry:
    """Ordered, read-only view over a statuses snapshot."""

    def __init__(self, statuses=None):
        self._ordered = [StatusConfig.from_dict(s) for s in (statuses or []) if s.get("id")]
        self._by_id = {s.id: s for s in self._ordered}

    def __len__(self) -> int:
        return len(self._ordered)

    def __iter__(self):
        return iter(self._ordered)

    def __contains__(self, status_id) -> bool:
        return status_id in self._by_id

    def lookup(self, status_id) -> StatusConfig:
        """Return the status config, or the neutral default for unknown ids."""
        found = self._by_id.get(status_id)
        if found is not None:
            return found
        return StatusConfig.unknown(status_id)

    def ids_of_type(self, status_type: str) -> set[str]:
        return {s.id for s in self._ordered if s.automation_type == status_type}

    def is_end(self, status_id) -> bool:
        return self.lookup(status_id).is_end

    def to_list(self) -> list[dict]:
        return [s.to_dict() for s in self._ordered]
