# src/homeloop/notifications/dispatcher.py

from __future__ import annotations

"""
Notification delivery.

- LogNotificationDispatcher: writes notifications to the log (default, no transport needed).
- MatrixNotificationDispatcher: posts the rendered text into the member's Matrix room.

Dispatchers raise on delivery failure; callers decide whether that is fatal
(the settlement runner treats it as best-effort).
"""

import json
import logging
import os
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

from nio import AsyncClient, AsyncClientConfig, LoginResponse, RoomSendError

from .templates import Notification

logger = logging.getLogger(__name__)


class NotificationDeliveryError(RuntimeError):
    pass


class LogNotificationDispatcher:
    def __init__(self) -> None:
        self.sent_count = 0

    async def send_to_user(self, user_id: str, notification: Notification) -> None:
        self.sent_count += 1
        logger.info(
            "Notification user=%s kind=%s title=%r body=%r",
            user_id,
            notification.kind,
            notification.title,
            notification.body,
        )


class MatrixNotificationDispatcher:
    """
    Routes member ids to Matrix rooms.

    Lookup order: explicit member -> room mapping, then the default room.
    A member with no room at all is logged and skipped (not an error).

    The nio client is created on first use by `client_factory`, so it binds to
    the event loop that actually sends (the scheduler thread's loop).
    """

    def __init__(
        self,
        client_factory: Callable[[], Awaitable[AsyncClient | None]],
        *,
        member_rooms: dict[str, str] | None = None,
        default_room: str | None = None,
    ) -> None:
        self._client_factory = client_factory
        self._client: AsyncClient | None = None
        self._member_rooms = dict(member_rooms or {})
        self._default_room = (default_room or "").strip() or None

    def room_for(self, user_id: str) -> str | None:
        return self._member_rooms.get(user_id) or self._default_room

    async def _get_client(self) -> AsyncClient:
        if self._client is None:
            client = await self._client_factory()
            if client is None:
                raise NotificationDeliveryError("Matrix client is not available")
            self._client = client
        return self._client

    async def send_to_user(self, user_id: str, notification: Notification) -> None:
        room_id = self.room_for(user_id)
        if not room_id:
            logger.warning("No Matrix room for user=%s; notification %s dropped", user_id, notification.kind)
            return

        client = await self._get_client()
        resp = await client.room_send(
            room_id=room_id,
            message_type="m.room.message",
            content={
                "msgtype": "m.notice",
                "body": notification.render_text(),
                "homeloop.kind": notification.kind,
                "homeloop.data": notification.data,
            },
            ignore_unverified_devices=True,
        )
        if isinstance(resp, RoomSendError):
            raise NotificationDeliveryError(f"Matrix room_send failed room={room_id}: {resp.message}")

        logger.debug("Notification sent user=%s room=%s kind=%s", user_id, room_id, notification.kind)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None


# ---- Matrix client bootstrap ----


def _session_path(store_dir: Path) -> Path:
    return store_dir / "session.json"


def _load_json(path: Path) -> dict[str, Any]:
    val = json.loads(path.read_text("utf-8"))
    if isinstance(val, dict):
        return val
    raise ValueError("Expected JSON object")


def _atomic_write_json(path: Path, data: dict[str, Any]) -> None:
    tmp = path.with_suffix(".tmp")
    tmp.write_text(json.dumps(data, ensure_ascii=False), "utf-8")
    os.replace(tmp, path)
    try:
        os.chmod(path, 0o600)
    except OSError as e:
        logger.debug("chmod on %s failed: %r", path, e)


async def create_matrix_client(settings) -> AsyncClient | None:
    """
    Create a Matrix AsyncClient for sending notifications.

    session.json (access token + device id) is reused across restarts; the
    password is only needed once to bootstrap it. The file holds a secret and
    lives under the gitignored data dir.
    """
    homeserver = (getattr(settings, "matrix_homeserver", "") or "").strip()
    user_id = (getattr(settings, "matrix_user_id", "") or "").strip()
    password = (getattr(settings, "matrix_password", "") or "").strip()
    store_dir = Path(getattr(settings, "matrix_store_path", Path(".local/homeloop/matrix_store")))

    if not homeserver or not user_id:
        logger.error("Matrix is not configured: set HOMELOOP_MATRIX_HOMESERVER and HOMELOOP_MATRIX_USER_ID")
        return None

    store_dir.mkdir(parents=True, exist_ok=True)
    session_file = _session_path(store_dir)

    client = AsyncClient(
        homeserver,
        user_id,
        config=AsyncClientConfig(encryption_enabled=False, store_sync_tokens=False),
    )

    if session_file.exists():
        try:
            data = _load_json(session_file)
            access_token = data.get("access_token")
            sess_user_id = data.get("user_id")
            device_id = data.get("device_id")
            if not access_token or not sess_user_id or not device_id:
                raise ValueError("session.json is missing required fields")

            client.access_token = str(access_token)
            client.user_id = str(sess_user_id)
            client.device_id = str(device_id)
            logger.info("Matrix session restored for %s", client.user_id)
            return client
        except (OSError, ValueError) as e:
            logger.warning("Failed to restore Matrix session.json, will try password login: %r", e)

    if not password:
        logger.error(
            "Matrix session.json not found and password is not set. "
            "Set HOMELOOP_MATRIX_PASSWORD once to bootstrap a session."
        )
        await client.close()
        return None

    device_name = f"{getattr(settings, 'app_name', 'homeloop')} (Python)"
    logger.info("Logging in to Matrix to bootstrap a new session (device_name=%r)...", device_name)
    resp = await client.login(password=password, device_name=device_name)
    if not isinstance(resp, LoginResponse):
        logger.error("Matrix login failed: %r", resp)
        await client.close()
        return None

    try:
        _atomic_write_json(
            session_file,
            {"access_token": resp.access_token, "user_id": resp.user_id, "device_id": resp.device_id},
        )
        logger.info("Matrix session saved to %s (user=%s)", session_file, resp.user_id)
    except OSError as e:
        logger.error("Failed to write Matrix session.json (%s): %r", session_file, e)

    return client
