# tests/test_dispatcher.py

from __future__ import annotations

from typing import Any

import pytest
from nio import RoomSendError

from homeloop.notifications.dispatcher import (
    LogNotificationDispatcher,
    MatrixNotificationDispatcher,
    NotificationDeliveryError,
)
from homeloop.notifications.templates import build_goal_awarded_notification


class FakeMatrixClient:
    def __init__(self, response: Any = None) -> None:
        self.sent: list[dict[str, Any]] = []
        self.response = response
        self.closed = False

    async def room_send(self, **kwargs: Any) -> Any:
        self.sent.append(kwargs)
        return self.response

    async def close(self) -> None:
        self.closed = True


def _factory(client):
    calls = {"n": 0}

    async def factory():
        calls["n"] += 1
        return client

    return factory, calls


@pytest.mark.asyncio
async def test_routes_member_to_mapped_room_then_default() -> None:
    client = FakeMatrixClient()
    factory, calls = _factory(client)
    dispatcher = MatrixNotificationDispatcher(factory, member_rooms={"kid": "!kid:x"}, default_room="!family:x")
    note = build_goal_awarded_notification(80, "Help at home")

    await dispatcher.send_to_user("kid", note)
    await dispatcher.send_to_user("mom", note)

    assert [m["room_id"] for m in client.sent] == ["!kid:x", "!family:x"]
    assert client.sent[0]["content"]["body"].startswith("Weekly goal completed!")
    assert client.sent[0]["content"]["homeloop.kind"] == "contribution_goal_awarded"
    # The client is created once and reused.
    assert calls["n"] == 1

    await dispatcher.close()
    assert client.closed


@pytest.mark.asyncio
async def test_member_without_room_is_skipped() -> None:
    client = FakeMatrixClient()
    factory, calls = _factory(client)
    dispatcher = MatrixNotificationDispatcher(factory)

    await dispatcher.send_to_user("kid", build_goal_awarded_notification(1, "x"))

    assert client.sent == []
    assert calls["n"] == 0


@pytest.mark.asyncio
async def test_delivery_errors_raise() -> None:
    failing = FakeMatrixClient(response=RoomSendError(message="forbidden"))
    factory, _ = _factory(failing)
    dispatcher = MatrixNotificationDispatcher(factory, default_room="!family:x")

    with pytest.raises(NotificationDeliveryError, match="forbidden"):
        await dispatcher.send_to_user("kid", build_goal_awarded_notification(1, "x"))

    no_client, _ = _factory(None)
    with pytest.raises(NotificationDeliveryError):
        await MatrixNotificationDispatcher(no_client, default_room="!r:x").send_to_user(
            "kid", build_goal_awarded_notification(1, "x")
        )


@pytest.mark.asyncio
async def test_log_dispatcher_counts() -> None:
    dispatcher = LogNotificationDispatcher()

    await dispatcher.send_to_user("kid", build_goal_awarded_notification(5, "x"))

    assert dispatcher.sent_count == 1
