"""Tests for the shared status approval machine and its persistence."""
from __future__ import annotations

from dataclasses import dataclass, replace

import pytest

from accelerator import services
from accelerator.approval import apply_status_change, is_privileged
from accelerator.errors import NotFoundError
from accelerator.models import ApprovalStatus, ItemStatus, Rns

ROLES = ("Startup", "Mentor", "Manager", "Admin")
STATUSES = [s.value for s in ItemStatus]

PENDING = ApprovalStatus.PENDING.value
UNCHANGED = ApprovalStatus.UNCHANGED.value


@dataclass
class Record:
    status: int = ItemStatus.NEW.value
    requested_status: int = ItemStatus.NEW.value
    approval_status: str = UNCHANGED


def _state(r) -> tuple:
    return r.status, r.requested_status, r.approval_status


class TestApplyStatusChange:
    def test_only_startup_is_unprivileged(self):
        assert not is_privileged("Startup")
        assert all(is_privileged(r) for r in ("Mentor", "Manager", "Admin"))

    def test_startup_proposal_is_pending(self):
        r = apply_status_change(Record(), "Startup", ItemStatus.ON_TRACK.value)
        assert _state(r) == (ItemStatus.NEW.value, ItemStatus.ON_TRACK.value, PENDING)

    def test_startup_requesting_current_status_clears_pending(self):
        r = Record(status=1, requested_status=3, approval_status=PENDING)
        apply_status_change(r, "Startup", 1)
        assert _state(r) == (1, 1, UNCHANGED)

    def test_mentor_sets_status(self):
        r = apply_status_change(Record(), "Mentor", ItemStatus.COMPLETED.value)
        assert _state(r) == (4, 4, UNCHANGED)

    def test_mentor_settles_pending_proposal(self):
        r = apply_status_change(Record(), "Startup", 3)
        apply_status_change(r, "Manager", 5)
        assert _state(r) == (5, 5, UNCHANGED)

    def test_repeat_request_is_noop(self):
        r = Record(status=1, requested_status=3, approval_status=PENDING)
        apply_status_change(r, "Admin", 3)
        # Same requested status: privileged actor does not promote it.
        assert _state(r) == (1, 3, PENDING)

    @pytest.mark.parametrize("role", ROLES)
    @pytest.mark.parametrize("target", STATUSES)
    def test_idempotent(self, role, target):
        for start in (Record(), Record(status=2, requested_status=6, approval_status=PENDING)):
            once = apply_status_change(replace(start), role, target)
            twice = apply_status_change(replace(once), role, target)
            assert _state(once) == _state(twice)

    @pytest.mark.parametrize("target", STATUSES)
    def test_startup_never_changes_status(self, target):
        for start in (Record(), Record(status=4, requested_status=2, approval_status=PENDING)):
            r = apply_status_change(replace(start), "Startup", target)
            assert r.status == start.status

    @pytest.mark.parametrize("role", ("Mentor", "Manager", "Admin"))
    @pytest.mark.parametrize("target", STATUSES)
    def test_privileged_authority(self, role, target):
        r = apply_status_change(Record(status=2, requested_status=2), role, target)
        if target != 2:
            assert r.status == r.requested_status == target
            assert r.approval_status == UNCHANGED


class TestChangeStatusService:
    @pytest.mark.parametrize("kind", ("task", "initiative", "roadblock"))
    def test_same_machine_for_every_kind(self, session, startup, kind):
        data = {"description": "Item"}
        if kind == "initiative":
            task = services.create_work_item(session, "task", startup.id, {"description": "Parent"})
            data["rns_id"] = task.id
        item = services.create_work_item(session, kind, startup.id, data)

        services.change_status(session, kind, item.id, "Startup", ItemStatus.DELAYED.value)
        assert _state(item) == (1, 5, PENDING)

        services.change_status(session, kind, item.id, "Mentor", ItemStatus.SCHEDULED.value)
        assert _state(item) == (2, 2, UNCHANGED)

    def test_persisted(self, SessionLocal, session, startup):
        item = services.create_work_item(session, "task", startup.id, {"description": "Pitch deck"})
        services.change_status(session, "task", item.id, "Startup", 3)
        with SessionLocal() as other:
            fresh = other.get(Rns, item.id)
            assert _state(fresh) == (1, 3, PENDING)

    def test_unknown_item(self, session):
        with pytest.raises(NotFoundError):
            services.change_status(session, "roadblock", 999, "Mentor", 2)
