"""WebSocket route for the realtime hub.

- Connections are admitted anonymously; a handshake token (query param or
  ``Authorization: Bearer``) is verified up front and used by ``authenticate``.
- Server sends JSON ping on idle; closes after configurable missed pongs.
- Business errors become ``error`` envelopes and the connection stays open.
"""
from __future__ import annotations

from typing import Any, Optional
import asyncio

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from application.services.realtime_service import HubService
from application.services.token_service import TokenService
from core.config import settings
from core.logging_config import get_logger
from domain.common.exceptions import BusinessException
from shared.codes import BusinessCode


logger = get_logger(__name__)


router = APIRouter(prefix="/ws", tags=["WebSocket"])


def _extract_token(ws: WebSocket) -> str | None:
    # Prefer query param, fallback to header `Authorization: Bearer x`
    token = ws.query_params.get("token")
    if token:
        return token
    auth = ws.headers.get("authorization") or ""
    if auth.lower().startswith("bearer "):
        return auth[7:].strip()
    return None


def get_hub_service_from_app(ws: WebSocket) -> HubService:
    svc = getattr(ws.app.state, "hub_service", None)
    if svc is None:
        raise RuntimeError("Hub service not initialized. Ensure lifespan sets app.state.hub_service.")
    return svc


def _token_service_from_app(ws: WebSocket) -> TokenService:
    return getattr(ws.app.state, "token_service", None) or TokenService()


async def _dispatch(hub: HubService, connection_id: int, msg: Any) -> None:
    if not isinstance(msg, dict):
        raise BusinessException(
            code=BusinessCode.PARAM_ERROR,
            message="Message must be a JSON object",
            error_type="InvalidMessage",
        )
    mtype = str(msg.get("type") or "").lower()
    if mtype == "authenticate":
        claimed = msg.get("user_id", msg.get("userId"))
        await hub.authenticate(connection_id, claimed_user_id=claimed, token=msg.get("token"))
    elif mtype == "typing":
        target = msg.get("target", msg.get("recipient_id"))
        is_typing = msg.get("is_typing", False)
        if not isinstance(is_typing, bool):
            raise BusinessException(
                code=BusinessCode.PARAM_ERROR,
                message="is_typing must be a boolean",
                error_type="InvalidMessage",
                field="is_typing",
            )
        await hub.typing(connection_id, target, is_typing)
    elif mtype in ("subscribe", "subscribetotopic"):
        await hub.subscribe_to_topic(connection_id, str(msg.get("topic") or msg.get("room") or ""))
    elif mtype == "unsubscribe":
        await hub.unsubscribe_from_topic(connection_id, str(msg.get("topic") or msg.get("room") or ""))
    elif mtype == "ping":
        await hub.pong(connection_id)
    elif mtype == "pong":
        # Client heartbeat reply; nothing else to do.
        return
    else:
        raise BusinessException(
            code=BusinessCode.PARAM_ERROR,
            message="Unknown message type",
            error_type="UnknownMessageType",
            details={"type": mtype},
        )


@router.websocket("")
async def websocket_endpoint(ws: WebSocket) -> None:
    await ws.accept()
    # Handshake identity is optional: anonymous connections may still read global chat and topics
    verified_user_id: Optional[int] = None
    token = _extract_token(ws)
    if token:
        try:
            verified_user_id = await _token_service_from_app(ws).verify_access_token(token)
        except BusinessException:
            verified_user_id = None
        if verified_user_id is None:
            logger.info("ws_handshake_rejected")
            await ws.close(code=1008)
            return

    hub = get_hub_service_from_app(ws)
    connection_id = await hub.open(ws, verified_user_id=verified_user_id)
    try:
        # Heartbeat/idle detection parameters (configurable via .env)
        idle_ping_interval = float(settings.realtime.idle_ping_interval_s)
        pong_grace = float(settings.realtime.pong_grace_s)
        missed_limit = int(settings.realtime.missed_ping_limit)

        missed = 0
        while True:
            if idle_ping_interval and idle_ping_interval > 0:
                try:
                    msg = await asyncio.wait_for(ws.receive_json(), timeout=idle_ping_interval)
                except asyncio.TimeoutError:
                    # Idle: send ping and wait a short grace for response
                    missed += 1
                    if not await hub.ping(connection_id):
                        await ws.close(code=1001)
                        break
                    try:
                        msg = await asyncio.wait_for(ws.receive_json(), timeout=pong_grace)
                    except asyncio.TimeoutError:
                        if missed > missed_limit:
                            logger.info("ws_heartbeat_timeout", connection_id=connection_id, missed=missed)
                            await ws.close(code=1001)
                            break
                        # Continue waiting; send next ping on next idle interval
                        continue
            else:
                # Idle ping disabled: wait indefinitely for next message
                msg = await ws.receive_json()

            # any inbound frame proves liveness
            missed = 0
            try:
                await _dispatch(hub, connection_id, msg)
            except BusinessException as exc:
                await hub.send_error(connection_id, exc.to_dict())
    except WebSocketDisconnect:
        logger.info("ws_client_disconnected", connection_id=connection_id)
    except Exception as exc:
        logger.error("ws_error", connection_id=connection_id, error=str(exc), exc_info=True)
    finally:
        try:
            await hub.close(connection_id)
        except Exception as exc:
            logger.error("ws_close_failed", connection_id=connection_id, error=str(exc), exc_info=True)
