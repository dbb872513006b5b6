"""
PDCA Action Tracker
Tests: status registry, status → date rule, sub-action list transformations.
"""

from datetime import date

import pytest

from pdca.core.exceptions import NotFoundError, ValidationError
from pdca.services import lifecycle
from pdca.services.status_registry import DEFAULT_STATUSES, NEUTRAL_COLOR, StatusRegistry

TODAY = date(2024, 5, 2)

STATUSES = DEFAULT_STATUSES + [
    {"id": "revisando", "label": "Revisando", "color": "#8B5CF6", "type": "inprogress"},
]


@pytest.fixture()
def registry():
    return StatusRegistry(STATUSES)


def _action(**kw):
    base = {
        "id": "a1",
        "action": "Fix leak",
        "status": "pendiente",
        "start_date": "",
        "actual_end_date": "",
        "proposed_end_date": "2024-05-10",
        "assigned_users": ["u1"],
    }
    base.update(kw)
    return base


# ═════════════════════════════════════════════════════════════════════════════
# STATUS REGISTRY
# ═════════════════════════════════════════════════════════════════════════════

class TestStatusRegistry:
    def test_lookup_known(self, registry):
        cfg = registry.lookup("finalizado")
        assert cfg.label == "Finalizado"
        assert cfg.is_end
        assert cfg.known

    def test_lookup_unknown_falls_back(self, registry):
        cfg = registry.lookup("borrado")
        assert cfg.label == "borrado"
        assert cfg.color == NEUTRAL_COLOR
        assert cfg.type == "none"
        assert not cfg.known
        assert not cfg.is_start and not cfg.is_end

    def test_lookup_none_id(self, registry):
        assert registry.lookup(None).label == ""

    def test_inprogress_acts_as_none(self, registry):
        cfg = registry.lookup("revisando")
        assert cfg.type == "inprogress"
        assert cfg.automation_type == "none"

    def test_ids_of_type(self, registry):
        assert registry.ids_of_type("end") == {"finalizado", "descartado"}
        assert registry.ids_of_type("start") == {"en_curso"}

    def test_order_preserved(self, registry):
        assert [s["id"] for s in registry.to_list()][:3] == ["pendiente", "en_curso", "pendiente_validar"]

    def test_empty_registry_is_total(self):
        assert StatusRegistry([]).lookup("x").type == "none"


# ═════════════════════════════════════════════════════════════════════════════
# STATUS → DATE RULE
# ═════════════════════════════════════════════════════════════════════════════

class TestStatusRule:
    @pytest.mark.parametrize("prior", ["", "2023-01-01"])
    def test_start_overwrites_start_date(self, registry, prior):
        updates = lifecycle.apply_status_change(_action(start_date=prior), "en_curso", registry, today=TODAY)
        assert updates == {"status": "en_curso", "start_date": "2024-05-02"}

    def test_end_sets_empty_actual_end(self, registry):
        updates = lifecycle.apply_status_change(_action(), "finalizado", registry, today=TODAY)
        assert updates == {"status": "finalizado", "actual_end_date": "2024-05-02"}

    def test_end_never_overwrites(self, registry):
        record = _action(actual_end_date="2024-04-01")
        updates = lifecycle.apply_status_change(record, "descartado", registry, today=TODAY)
        assert updates == {"status": "descartado"}

    def test_end_reapplied_keeps_first_date(self, registry):
        first = lifecycle.with_status(_action(), "finalizado", registry, today=date(2024, 5, 1))
        second = lifecycle.with_status(first, "finalizado", registry, today=date(2024, 6, 1))
        assert second["actual_end_date"] == "2024-05-01"

    @pytest.mark.parametrize("status", ["pendiente", "pendiente_validar", "revisando", "unknown"])
    def test_none_types_touch_no_dates(self, registry, status):
        record = _action(start_date="2024-01-01", actual_end_date="")
        changed = lifecycle.with_status(record, status, registry, today=TODAY)
        assert changed["status"] == status
        assert changed["start_date"] == "2024-01-01"
        assert changed["actual_end_date"] == ""

    def test_other_fields_untouched(self, registry):
        record = _action(observations="note", priority=True)
        changed = lifecycle.with_status(record, "en_curso", registry, today=TODAY)
        assert changed["observations"] == "note"
        assert changed["priority"] is True
        assert changed["proposed_end_date"] == "2024-05-10"

    def test_input_not_mutated(self, registry):
        record = _action()
        lifecycle.with_status(record, "finalizado", registry, today=TODAY)
        assert record["status"] == "pendiente"
        assert record["actual_end_date"] == ""

    def test_defaults_to_today(self, registry):
        updates = lifecycle.apply_status_change(_action(), "en_curso", registry)
        assert updates["start_date"] == date.today().isoformat()


# ═════════════════════════════════════════════════════════════════════════════
# SUB-ACTION LISTS
# ═════════════════════════════════════════════════════════════════════════════

class TestSubactionTransforms:
    def _subs(self):
        return [
            {"id": "s1", "title": "Order part", "status": "pendiente", "assigned_users": ["u1"]},
            {"id": "s2", "title": "Install", "status": "pendiente", "assigned_users": []},
        ]

    def test_add_appends(self):
        subs = self._subs()
        result = lifecycle.add_subaction(subs, {"id": "s3", "title": "Verify", "status": "pendiente"})
        assert [s["id"] for s in result] == ["s1", "s2", "s3"]
        assert len(subs) == 2

    def test_add_generates_id(self):
        result = lifecycle.add_subaction([], {"title": "Verify", "status": "pendiente"})
        assert result[0]["id"]

    def test_add_duplicate_id_rejected(self):
        with pytest.raises(ValidationError):
            lifecycle.add_subaction(self._subs(), {"id": "s1", "title": "Again"})

    def test_update_maps_by_id(self):
        result = lifecycle.update_subaction(self._subs(), "s2", {"title": " Mount ", "assigned_users": ["u2", "u2"]})
        assert result[1]["title"] == "Mount"
        assert result[1]["assigned_users"] == ["u2"]
        assert result[0] == self._subs()[0]

    def test_update_blank_title_rejected(self):
        with pytest.raises(ValidationError):
            lifecycle.update_subaction(self._subs(), "s1", {"title": "  "})

    def test_update_unknown_id(self):
        with pytest.raises(NotFoundError):
            lifecycle.update_subaction(self._subs(), "nope", {"title": "x"})

    def test_remove_filters_by_id(self):
        result = lifecycle.remove_subaction(self._subs(), "s1")
        assert [s["id"] for s in result] == ["s2"]

    def test_remove_unknown_id(self):
        with pytest.raises(NotFoundError):
            lifecycle.remove_subaction(self._subs(), "nope")

    def test_change_status_applies_rule(self, registry):
        result = lifecycle.change_subaction_status(self._subs(), "s2", "en_curso", registry, today=TODAY)
        assert result[1]["status"] == "en_curso"
        assert result[1]["start_date"] == "2024-05-02"
        assert "start_date" not in result[0]

    def test_change_status_end(self, registry):
        result = lifecycle.change_subaction_status(self._subs(), "s1", "finalizado", registry, today=TODAY)
        assert result[0]["actual_end_date"] == "2024-05-02"

    def test_normalize_requires_title(self):
        with pytest.raises(ValidationError):
            lifecycle.normalize_subaction({"title": ""}, "pendiente")

    def test_normalize_defaults(self):
        sub = lifecycle.normalize_subaction({"title": "Check"}, "pendiente")
        assert sub["status"] == "pendiente"
        assert sub["assigned_users"] == []
        assert sub["id"]
