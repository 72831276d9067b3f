"""
Live broadcast relay API.

- POST /audio-relay                 - action-dispatched RPC used by the admin and driver clients
- POST /sessions/{session_id}/frames - push one raw binary frame (Content-Type = mime type)
- GET  /status                      - composite status snapshot (read-only)
- GET  /broadcasts                  - active broadcasts
- GET  /broadcasts/{tour_id}        - active broadcast for one tour
- GET  /debug                       - dump of all relay stores (no audio)

Every response is ``{success, ...}``; failures map to 400 (caller error) or 500.
"""
import logging
from typing import Callable, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from relay.api.schemas import RelayRequest
from relay.services import LiveBroadcastRelay
from relay.services.errors import (
    FrameTooLarge,
    Internal,
    InvalidArgument,
    SessionNotActive,
    SessionNotFound,
)
from relay.services.results import PushResult, RelayResult

router = APIRouter(tags=["relay"])
logger = logging.getLogger("relay.api")

_HTTP_STATUS: Dict[str, int] = {
    InvalidArgument.code: 400,
    FrameTooLarge.code: 400,
    SessionNotFound.code: 400,
    SessionNotActive.code: 400,
    Internal.code: 500,
}

_GENERIC_MIME_TYPES = {"", "application/octet-stream"}


def get_relay(request: Request) -> LiveBroadcastRelay:
    relay = getattr(request.app.state, "relay", None)
    if relay is None:
        raise HTTPException(status_code=503, detail="Relay not initialized")
    return relay


def respond(result: RelayResult) -> JSONResponse:
    status = 200 if result.success else _HTTP_STATUS.get(result.code or "", 500)
    return JSONResponse(
        status_code=status,
        content=result.model_dump(mode="json", by_alias=True),
    )


Action = Callable[[LiveBroadcastRelay, RelayRequest], RelayResult]

ACTIONS: Dict[str, Action] = {
    "startBroadcast": lambda r, b: r.start_session(b.tour_id, b.admin_id, b.driver_id),
    "sendAudio": lambda r, b: r.push_frame(b.session_id, b.payload(), b.mime_type),
    "getAudio": lambda r, b: r.pull_frames(b.driver_id, b.tour_id),
    "getBroadcastStatus": lambda r, b: r.get_status(b.tour_id, b.session_id, b.driver_id),
    "getActiveBroadcasts": lambda r, b: r.get_active_broadcasts(),
    "getActiveBroadcastForTour": lambda r, b: r.get_active_broadcast(b.tour_id),
    "getDebugInfo": lambda r, b: r.get_debug_info(),
    "stopBroadcast": lambda r, b: r.stop_session(b.session_id, b.tour_id),
    "endSession": lambda r, b: r.stop_session(b.session_id, b.tour_id),
    "forceDriverToBroadcast": lambda r, b: r.force_attach(b.driver_id, b.session_id),
}


@router.post("/audio-relay", summary="Action-dispatched relay call")
def audio_relay(body: RelayRequest, relay: LiveBroadcastRelay = Depends(get_relay)):
    handler = ACTIONS.get(body.action)
    if handler is None:
        logger.warning("unknown relay action: %s", body.action)
        return respond(
            RelayResult(
                success=False,
                error=f"Unknown action: {body.action}",
                code=InvalidArgument.code,
            )
        )
    return respond(handler(relay, body))


@router.post("/sessions/{session_id}/frames", summary="Push one raw audio frame")
async def push_raw_frame(
    session_id: str,
    request: Request,
    relay: LiveBroadcastRelay = Depends(get_relay),
):
    """
    Binary alternative to ``sendAudio``: the request body is the frame, the
    Content-Type header its mime type.
    Example: curl --data-binary @chunk.webm -H 'Content-Type: audio/webm' .../frames
    """
    declared = request.headers.get("content-length")
    if declared is not None and declared.isdigit() and int(declared) > relay.max_frame_bytes:
        too_large = FrameTooLarge(int(declared), relay.max_frame_bytes)
        logger.warning("push_raw_frame rejected: %s", too_large)
        return respond(PushResult(success=False, error=str(too_large), code=too_large.code))

    payload = await request.body()
    mime_type: Optional[str] = request.headers.get("content-type", "")
    if mime_type in _GENERIC_MIME_TYPES:
        mime_type = None
    return respond(relay.push_frame(session_id, payload, mime_type))


@router.get("/status", summary="Composite status snapshot")
def broadcast_status(
    tour_id: Optional[str] = Query(None, alias="tourId"),
    session_id: Optional[str] = Query(None, alias="sessionId"),
    driver_id: Optional[str] = Query(None, alias="driverId"),
    relay: LiveBroadcastRelay = Depends(get_relay),
):
    return respond(relay.get_status(tour_id, session_id, driver_id))


@router.get("/broadcasts", summary="Active broadcasts")
def active_broadcasts(relay: LiveBroadcastRelay = Depends(get_relay)):
    return respond(relay.get_active_broadcasts())


@router.get("/broadcasts/{tour_id}", summary="Active broadcast for one tour")
def active_broadcast(tour_id: str, relay: LiveBroadcastRelay = Depends(get_relay)):
    return respond(relay.get_active_broadcast(tour_id))


@router.get("/debug", summary="Relay store dump")
def debug_info(relay: LiveBroadcastRelay = Depends(get_relay)):
    return respond(relay.get_debug_info())
