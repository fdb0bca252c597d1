"""
CRM - Authorization policy tests
"""

import pytest

from services.errors import InvalidInputError, PermissionDeniedError
from services.permissions import (
    can_add_task_comment,
    can_delete_task_comment,
    can_modify_task,
    can_view_task,
    can_view_task_comments,
    ensure_admin,
    ensure_can_modify_task,
    ensure_delete_confirmed,
    is_admin,
)

ADMIN = {"id": "u-admin", "role": "admin"}
ASSIGNEE = {"id": "u-1", "role": "member"}
OTHER = {"id": "u-2", "role": "member"}

TASK = {"id": "t-1", "assigned_to": "u-1", "assigned_by": "u-2", "status": "pending"}


class TestTaskPermissions:

    def test_admin_and_assignee_can_modify(self):
        assert can_modify_task(ADMIN, TASK) is True
        assert can_modify_task(ASSIGNEE, TASK) is True

    def test_assigner_cannot_modify(self):
        assert can_modify_task(OTHER, TASK) is False

    def test_anonymous(self):
        assert can_modify_task(None, TASK) is False
        assert is_admin(None) is False

    def test_unassigned_task_is_admin_only(self):
        task = {**TASK, "assigned_to": None}
        assert can_modify_task({"id": None, "role": "member"}, task) is False
        assert can_modify_task(ADMIN, task) is True

    def test_ensure_raises_with_action(self):
        with pytest.raises(PermissionDeniedError, match="Only the assigned person can start this task"):
            ensure_can_modify_task(OTHER, TASK, "start")
        ensure_can_modify_task(ASSIGNEE, TASK, "start")

    def test_delete_confirmation(self):
        with pytest.raises(InvalidInputError, match="type CONFIRM"):
            ensure_delete_confirmed("confirm")
        ensure_delete_confirmed("CONFIRM")

    def test_ensure_admin(self):
        with pytest.raises(PermissionDeniedError, match="Admin access required to delete leads"):
            ensure_admin(ASSIGNEE, "delete leads")
        ensure_admin(ADMIN, "delete leads")

    def test_view_task(self):
        assert can_view_task(ADMIN, TASK)
        assert can_view_task(ASSIGNEE, TASK)
        assert not can_view_task(OTHER, TASK)


class TestCommentPermissions:

    def test_view(self):
        assert can_view_task_comments(ADMIN, TASK)
        assert can_view_task_comments(ASSIGNEE, TASK)
        assert not can_view_task_comments(OTHER, TASK)

    def test_add_only_when_completed(self):
        assert not can_add_task_comment(ASSIGNEE, TASK)
        completed = {**TASK, "status": "completed"}
        assert can_add_task_comment(ASSIGNEE, completed)
        assert not can_add_task_comment(ADMIN, completed)

    def test_delete(self):
        comment = {"id": "c-1", "user_id": "u-1"}
        assert can_delete_task_comment(ASSIGNEE, comment)
        assert can_delete_task_comment(ADMIN, comment)
        assert not can_delete_task_comment(OTHER, comment)
