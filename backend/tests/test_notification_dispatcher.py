"""
CRM - Notification intent tests
The dispatcher never raises; results describe what happened.
"""

import httpx
import pytest

import config
from services import notification_dispatcher
from services.notification_dispatcher import build_task_intent, dispatch, notify_task


def _patch_transport(monkeypatch, handler):
    real_client = httpx.AsyncClient

    def client_factory(*args, **kwargs):
        kwargs["transport"] = httpx.MockTransport(handler)
        return real_client(*args, **kwargs)

    monkeypatch.setattr(notification_dispatcher.httpx, "AsyncClient", client_factory)


class TestIntent:

    def test_assigned(self):
        intent = build_task_intent("t-1", "u-1", "Alice")
        assert intent["title"] == "New Task Assigned"
        assert intent["message"] == "New task assigned by Alice"
        assert intent["target_user_id"] == "u-1"
        assert intent["metadata"] == {"assigned_by_name": "Alice"}

    def test_reminder(self):
        intent = build_task_intent("t-1", "u-1", "Alice", "task_reminder")
        assert intent["title"] == "Task Reminder"
        assert intent["message"] == "Reminder: Task still pending"

    def test_unknown_type(self):
        with pytest.raises(ValueError):
            build_task_intent("t-1", "u-1", "Alice", "task_deleted")


class TestDispatch:

    @pytest.mark.asyncio
    async def test_not_configured(self, monkeypatch):
        monkeypatch.setattr(config, "NOTIFY_FUNCTION_URL", "")
        result = await notify_task("t-1", "u-1", "Alice")
        assert result == {"success": False, "error": "not_configured"}

    @pytest.mark.asyncio
    async def test_posts_payload(self, monkeypatch):
        monkeypatch.setattr(config, "NOTIFY_FUNCTION_URL", "https://push.test/notify")
        monkeypatch.setattr(config, "NOTIFY_FUNCTION_KEY", "k-123")
        seen = []

        def handler(request: httpx.Request):
            seen.append(request)
            return httpx.Response(200, json={"ok": True})

        _patch_transport(monkeypatch, handler)

        result = await dispatch(build_task_intent("t-1", "u-1", "Alice", "task_reminder"))
        assert result == {"success": True}
        assert seen[0].headers["Authorization"] == "Bearer k-123"
        body = httpx.Response(200, content=seen[0].content).json()
        assert body["user_id"] == "u-1"
        assert body["notification_type"] == "task_reminder"

    @pytest.mark.asyncio
    async def test_http_error_is_reported(self, monkeypatch):
        monkeypatch.setattr(config, "NOTIFY_FUNCTION_URL", "https://push.test/notify")
        _patch_transport(monkeypatch, lambda request: httpx.Response(500, text="boom"))

        result = await dispatch(build_task_intent("t-1", "u-1", "Alice"))
        assert result == {"success": False, "error": "HTTP 500"}

    @pytest.mark.asyncio
    async def test_connection_error_is_reported(self, monkeypatch):
        monkeypatch.setattr(config, "NOTIFY_FUNCTION_URL", "https://push.test/notify")

        def handler(request):
            raise httpx.ConnectError("unreachable", request=request)

        _patch_transport(monkeypatch, handler)

        result = await dispatch(build_task_intent("t-1", "u-1", "Alice"))
        assert result["success"] is False
