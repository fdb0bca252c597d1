"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  CRM - Task Lifecycle Testing                                                ║
║                                                                              ║
║  1. Pure transition planning (guards, self-assign, revision builder)         ║
║  2. Store-backed transitions against an in-memory Mongo                      ║
║  3. Invariants hold after every accepted transition                          ║
║  4. Rejected transitions never write                                         ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import pytest
from datetime import datetime, timedelta, timezone

from config import parse_iso
from services.errors import InvalidInputError, InvalidStateError, NotFoundError, PermissionDeniedError
from services.task_lifecycle import (
    VALID_ACCEPTANCE_TRANSITIONS,
    VALID_STATUS_TRANSITIONS,
    accept_task,
    add_task_comment,
    build_revision_task,
    build_task,
    check_task_invariants,
    complete_task,
    compute_board_counts,
    create_task,
    decline_task,
    delete_task,
    delete_task_comment,
    get_task,
    list_pending_acceptance,
    list_task_comments,
    plan_accept,
    plan_complete,
    plan_decline,
    plan_start,
    request_revision,
    start_task,
    view_task,
)

NOW = datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc)
DUE = "2026-03-12T17:00:00Z"

ADMIN = {"id": "admin-1", "role": "admin", "full_name": "Ada"}
ALICE = {"id": "alice-1", "role": "member", "full_name": "Alice"}
BOB = {"id": "bob-1", "role": "member", "full_name": "Bob"}


def _task(**overrides):
    data = {"title": "Call the printer", "assigned_to": BOB["id"], "due_date": DUE}
    data.update(overrides)
    return build_task(data, ALICE, NOW)


class TestTransitionMaps:
    """Transition maps"""

    def test_completed_is_terminal(self):
        assert VALID_STATUS_TRANSITIONS["completed"] == []

    def test_declined_is_terminal(self):
        assert VALID_ACCEPTANCE_TRANSITIONS["declined"] == []

    def test_status_only_moves_forward(self):
        assert VALID_STATUS_TRANSITIONS["pending"] == ["in_progress"]
        assert VALID_STATUS_TRANSITIONS["in_progress"] == ["completed"]


class TestBuildTask:
    """Task creation rules"""

    def test_assigned_to_other_waits_for_acceptance(self):
        task = _task()
        assert task["acceptance_status"] == "pending"
        assert task["accepted_at"] is None
        assert task["assigned_by"] == ALICE["id"]
        assert task["status"] == "pending"

    @pytest.mark.parametrize("task_type", ["task", "revision", "review", "delivery"])
    def test_self_assignment_is_auto_accepted(self, task_type):
        task = build_task(
            {"title": "Own work", "assigned_to": ALICE["id"], "due_date": DUE, "task_type": task_type},
            ALICE, NOW
        )
        assert task["acceptance_status"] == "accepted"
        assert parse_iso(task["accepted_at"]) == NOW

    def test_reminder_defaults(self):
        task = _task()
        assert task["reminder_interval_hours"] == 5
        assert task["max_reminders"] == 6
        assert task["reminders_sent"] == 0
        assert parse_iso(task["next_reminder_at"]) == NOW

    def test_lead_and_client_links_are_exclusive(self):
        with pytest.raises(InvalidInputError):
            _task(related_lead_id="lead-1", related_client_id="client-1")

    def test_title_required(self):
        with pytest.raises(InvalidInputError):
            _task(title="   ")

    def test_unknown_priority_rejected(self):
        with pytest.raises(InvalidInputError):
            _task(priority="critical")

    def test_new_task_satisfies_invariants(self):
        assert check_task_invariants(_task()) is True


class TestGuards:
    """Accept / decline / start / complete guards"""

    def test_only_assignee_accepts(self):
        task = _task()
        with pytest.raises(PermissionDeniedError):
            plan_accept(task, ALICE, NOW)
        with pytest.raises(PermissionDeniedError):
            plan_accept(task, ADMIN, NOW)
        assert plan_accept(task, BOB, NOW)["acceptance_status"] == "accepted"

    def test_decline_stores_reason(self):
        updates = plan_decline(_task(), BOB, "  no time  ", NOW)
        assert updates["acceptance_status"] == "declined"
        assert updates["decline_reason"] == "no time"

    def test_decline_only_from_pending(self):
        task = {**_task(), "acceptance_status": "accepted"}
        with pytest.raises(InvalidStateError):
            plan_decline(task, BOB, None, NOW)

    def test_start_before_accept_fails_not_accepted(self):
        with pytest.raises(InvalidStateError, match="not accepted"):
            plan_start(_task(), BOB, NOW)

    def test_start_declined_fails_declined(self):
        task = {**_task(), **plan_decline(_task(), BOB, None, NOW)}
        with pytest.raises(InvalidStateError, match="declined"):
            plan_start(task, BOB, NOW)

    def test_admin_may_start_for_assignee(self):
        task = {**_task(), "acceptance_status": "accepted", "accepted_at": "2026-03-10T09:00:00Z"}
        assert plan_start(task, ADMIN, NOW)["status"] == "in_progress"

    def test_other_member_cannot_start(self):
        task = {**_task(), "acceptance_status": "accepted"}
        with pytest.raises(PermissionDeniedError, match="Only the assigned person"):
            plan_start(task, ALICE, NOW)

    def test_complete_requires_in_progress(self):
        task = {**_task(), "acceptance_status": "accepted"}
        with pytest.raises(InvalidStateError):
            plan_complete(task, BOB, "done", NOW)

    def test_timestamps_never_go_backwards(self):
        task = {**_task(), "acceptance_status": "accepted", "accepted_at": "2026-03-10T10:00:00+00:00"}
        earlier = NOW - timedelta(hours=2)
        updates = plan_start(task, BOB, earlier)
        assert parse_iso(updates["started_at"]) >= parse_iso(task["accepted_at"])
        check_task_invariants({**task, **updates})


class TestInvariantCheck:
    """check_task_invariants"""

    def test_in_progress_without_acceptance_is_violation(self):
        with pytest.raises(InvalidStateError):
            check_task_invariants({**_task(), "status": "in_progress"})

    def test_completed_before_started_is_violation(self):
        task = {
            **_task(), "status": "completed", "acceptance_status": "accepted",
            "started_at": "2026-03-11T10:00:00+00:00", "completed_at": "2026-03-11T09:00:00+00:00",
        }
        with pytest.raises(InvalidStateError):
            check_task_invariants(task)


class TestRevisionBuilder:
    """Revision spawning"""

    def _completed(self, **overrides):
        task = {**_task(), "status": "completed", "acceptance_status": "accepted"}
        task.update(overrides)
        return task

    def test_revision_fields(self):
        revision = build_revision_task(self._completed(revision_count=0), ADMIN, NOW)
        assert revision["title"] == "Revision: Call the printer"
        assert revision["description"] == "Revision requested for: Call the printer"
        assert revision["task_type"] == "revision"
        assert revision["priority"] == "high"
        assert revision["revision_count"] == 1
        assert revision["assigned_to"] == BOB["id"]
        assert parse_iso(revision["due_date"]) == NOW + timedelta(hours=24)
        assert revision["acceptance_status"] == "pending"

    def test_revision_count_accumulates(self):
        revision = build_revision_task(self._completed(revision_count=2), ADMIN, NOW)
        assert revision["revision_count"] == 3

    def test_revision_on_admins_own_task_auto_accepts(self):
        source = self._completed(assigned_to=ADMIN["id"])
        assert build_revision_task(source, ADMIN, NOW)["acceptance_status"] == "accepted"

    @pytest.mark.parametrize("status", ["pending", "in_progress"])
    def test_revision_requires_completed(self, status):
        with pytest.raises(InvalidStateError):
            build_revision_task(self._completed(status=status), ADMIN, NOW)

    def test_revision_is_admin_only(self):
        with pytest.raises(PermissionDeniedError):
            build_revision_task(self._completed(), BOB, NOW)


class TestBoardCounts:
    def test_counts(self):
        accepted = {**_task(), "acceptance_status": "accepted"}
        overdue = {**accepted, "due_date": "2026-03-01T00:00:00+00:00"}
        waiting_past_due = {**_task(), "due_date": "2026-03-01T00:00:00+00:00"}
        counts = compute_board_counts(
            [_task(), accepted, overdue, waiting_past_due,
             {**accepted, "status": "in_progress"}, {**accepted, "status": "completed"}],
            NOW
        )
        assert counts["awaiting_acceptance"] == 2
        assert counts["pending"] == 2
        assert counts["in_progress"] == 1
        assert counts["completed"] == 1
        # tasks still awaiting acceptance are never overdue
        assert counts["overdue"] == 1


# ════════════════════════════════════════════════════════════════════════════
# STORE-BACKED
# ════════════════════════════════════════════════════════════════════════════

class TestTaskWorkflow:
    """Full workflow through the store"""

    @pytest.mark.asyncio
    async def test_assign_accept_start_complete(self, mock_db, intents, alice, bob):
        task = await create_task({"title": "Design flyer", "assigned_to": bob["id"], "due_date": DUE}, alice)
        assert task["acceptance_status"] == "pending"
        assert intents[-1]["notification_type"] == "task_assigned"
        assert intents[-1]["user_id"] == bob["id"]
        assert intents[-1]["assigned_by_name"] == "Alice Member"

        task = await accept_task(task["id"], bob)
        assert task["acceptance_status"] == "accepted"
        assert task["accepted_at"] is not None

        task = await start_task(task["id"], bob)
        assert task["status"] == "in_progress"

        task = await complete_task(task["id"], bob, "done")
        assert task["status"] == "completed"
        assert task["completion_note"] == "done"

        stored = await get_task(task["id"])
        assert stored["status"] == "completed"
        assert parse_iso(stored["started_at"]) <= parse_iso(stored["completed_at"])
        check_task_invariants(stored)

        actions = [e["action"] async for e in mock_db.event_log.find({"entity_id": task["id"]})]
        assert actions == ["task_created", "task_accepted", "task_started", "task_completed"]

    @pytest.mark.asyncio
    async def test_self_assigned_notification_still_sent(self, mock_db, intents, alice):
        task = await create_task({"title": "Self", "assigned_to": alice["id"], "due_date": DUE}, alice)
        assert task["acceptance_status"] == "accepted"
        assert len(intents) == 1

    @pytest.mark.asyncio
    async def test_declined_task_cannot_start_or_complete(self, mock_db, intents, alice, bob):
        task = await create_task({"title": "Flyer", "assigned_to": bob["id"], "due_date": DUE}, alice)
        await decline_task(task["id"], bob, "busy")

        with pytest.raises(InvalidStateError, match="declined"):
            await start_task(task["id"], bob)
        with pytest.raises(InvalidStateError):
            await complete_task(task["id"], bob)

        stored = await get_task(task["id"])
        assert stored["status"] == "pending"
        assert stored["acceptance_status"] == "declined"
        assert stored["decline_reason"] == "busy"

    @pytest.mark.asyncio
    async def test_rejected_transition_does_not_write(self, mock_db, intents, alice, bob):
        task = await create_task({"title": "Flyer", "assigned_to": bob["id"], "due_date": DUE}, alice)
        before = await get_task(task["id"])

        with pytest.raises(PermissionDeniedError):
            await accept_task(task["id"], alice)
        with pytest.raises(InvalidStateError):
            await start_task(task["id"], bob)

        assert await get_task(task["id"]) == before

    @pytest.mark.asyncio
    async def test_stale_read_is_rejected(self, mock_db, intents, alice, bob):
        task = await create_task({"title": "Flyer", "assigned_to": bob["id"], "due_date": DUE}, alice)
        await accept_task(task["id"], bob)
        with pytest.raises(InvalidStateError):
            await accept_task(task["id"], bob)

    @pytest.mark.asyncio
    async def test_unknown_assignee(self, mock_db, intents, alice):
        with pytest.raises(NotFoundError):
            await create_task({"title": "Ghost", "assigned_to": "nobody", "due_date": DUE}, alice)

    @pytest.mark.asyncio
    async def test_unknown_related_lead(self, mock_db, intents, alice, bob):
        with pytest.raises(NotFoundError):
            await create_task(
                {"title": "Call", "assigned_to": bob["id"], "due_date": DUE, "related_lead_id": "missing"},
                alice
            )

    @pytest.mark.asyncio
    async def test_pending_acceptance_list(self, mock_db, intents, alice, bob):
        await create_task({"title": "One", "assigned_to": bob["id"], "due_date": DUE}, alice)
        await create_task({"title": "Two", "assigned_to": alice["id"], "due_date": DUE}, alice)
        pending = await list_pending_acceptance(bob["id"])
        assert [t["title"] for t in pending] == ["One"]


class TestRevisionWorkflow:

    @pytest.mark.asyncio
    async def test_revision_spawns_new_task(self, mock_db, intents, admin, bob):
        task = await create_task({"title": "Logo", "assigned_to": bob["id"], "due_date": DUE}, admin)
        await accept_task(task["id"], bob)
        await start_task(task["id"], bob)
        await complete_task(task["id"], bob, "v1")

        revision = await request_revision(task["id"], admin)
        assert revision["id"] != task["id"]
        assert revision["task_type"] == "revision"
        assert revision["revision_count"] == 1
        assert revision["priority"] == "high"
        assert revision["revision_of"] == task["id"]
        assert intents[-1] == {
            "task_id": revision["id"], "user_id": bob["id"],
            "assigned_by_name": "Ada Admin", "notification_type": "task_assigned",
        }

        original = await get_task(task["id"])
        assert original["status"] == "completed"
        assert original["revision_count"] == 0

    @pytest.mark.asyncio
    async def test_revision_on_open_task_rejected(self, mock_db, intents, admin, bob):
        task = await create_task({"title": "Logo", "assigned_to": bob["id"], "due_date": DUE}, admin)
        with pytest.raises(InvalidStateError):
            await request_revision(task["id"], admin)
        assert await mock_db.tasks.count_documents({}) == 1


class TestDeleteAndComments:

    @pytest.mark.asyncio
    async def test_only_admin_deletes(self, mock_db, intents, admin, alice, bob):
        task = await create_task({"title": "Temp", "assigned_to": bob["id"], "due_date": DUE}, alice)
        with pytest.raises(PermissionDeniedError):
            await delete_task(task["id"], bob)
        await delete_task(task["id"], admin)
        with pytest.raises(NotFoundError):
            await get_task(task["id"])

    @pytest.mark.asyncio
    async def test_view_is_assignee_or_admin(self, mock_db, intents, admin, alice, bob):
        task = await create_task({"title": "Brochure", "assigned_to": bob["id"], "due_date": DUE}, alice)
        assert (await view_task(task["id"], bob))["id"] == task["id"]
        assert (await view_task(task["id"], admin))["id"] == task["id"]
        with pytest.raises(PermissionDeniedError):
            await view_task(task["id"], alice)

    @pytest.mark.asyncio
    async def test_comment_rules(self, mock_db, intents, admin, alice, bob):
        task = await create_task({"title": "Copy", "assigned_to": bob["id"], "due_date": DUE}, admin)
        await accept_task(task["id"], bob)
        await start_task(task["id"], bob)

        # not completed yet
        with pytest.raises(PermissionDeniedError):
            await add_task_comment(task["id"], bob, "early")

        await complete_task(task["id"], bob)
        with pytest.raises(InvalidInputError):
            await add_task_comment(task["id"], bob, "  ")
        with pytest.raises(PermissionDeniedError):
            await add_task_comment(task["id"], admin, "admin note")

        comment = await add_task_comment(task["id"], bob, "Client confirmed")

        assert [c["comment"] for c in await list_task_comments(task["id"], admin)] == ["Client confirmed"]
        assert len(await list_task_comments(task["id"], bob)) == 1
        with pytest.raises(PermissionDeniedError):
            await list_task_comments(task["id"], alice)

        with pytest.raises(PermissionDeniedError):
            await delete_task_comment(comment["id"], alice)
        await delete_task_comment(comment["id"], admin)
        assert await mock_db.task_comments.count_documents({}) == 0
