"""FastAPI HTTP routes and the realtime WebSocket transport."""

from __future__ import annotations

import json
import logging
from typing import Any

from fastapi import APIRouter, FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from starlette.concurrency import run_in_threadpool

from .errors import InvalidRequestError, ModelGatewayError, OnboardingError, SessionNotFoundError
from .models import SectionId, StateAction, StateActionType
from .service import OnboardingService

logger = logging.getLogger(__name__)

SERVICE_NAME = "contour-onboarding"
WS_MISSING_SESSION = 4000


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------

class CreateSessionBody(BaseModel):
    customer_id: str = ""
    customer_name: str = ""
    stakeholder_name: str = ""
    stakeholder_role: str = ""
    stakeholder_email: str = ""
    pre_meeting: bool = False


class FileBody(BaseModel):
    filename: str = ""
    mime_type: str = "application/octet-stream"
    data: str = Field(default="", description="Base64 file content")


class MessageBody(BaseModel):
    content: str = ""
    files: list[FileBody] = Field(default_factory=list)


class StateActionBody(BaseModel):
    type: StateActionType
    target: SectionId | None = None


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

router = APIRouter()


def _service(request: Request) -> OnboardingService:
    return request.app.state.service


@router.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok", "service": SERVICE_NAME}


@router.post("/api/sessions", status_code=201)
def create_session(body: CreateSessionBody, request: Request) -> dict[str, Any]:
    session = _service(request).create_session(
        body.customer_id,
        body.customer_name,
        body.stakeholder_name,
        body.stakeholder_role,
        body.stakeholder_email,
        pre_meeting=body.pre_meeting,
    )
    return session.model_dump(mode="json")


@router.get("/api/sessions")
def list_sessions(request: Request) -> list[dict[str, Any]]:
    return [s.model_dump(mode="json", exclude={"contour_map"}) for s in _service(request).list_sessions()]


@router.get("/api/sessions/{session_id}")
def get_session(session_id: str, request: Request) -> dict[str, Any]:
    return _service(request).get_session(session_id).model_dump(mode="json")


@router.post("/api/sessions/{session_id}/messages")
def send_message(session_id: str, body: MessageBody, request: Request) -> dict[str, Any]:
    # Sync route: FastAPI runs it in the threadpool, the session lock serializes turns.
    result = _service(request).send_message(
        session_id, body.content, [f.model_dump() for f in body.files]
    )
    return result.model_dump(mode="json")


@router.get("/api/sessions/{session_id}/messages")
def list_messages(session_id: str, request: Request) -> list[dict[str, Any]]:
    return [m.model_dump(mode="json") for m in _service(request).list_messages(session_id)]


@router.get("/api/sessions/{session_id}/contour")
def get_contour(session_id: str, request: Request) -> dict[str, Any]:
    return _service(request).get_contour(session_id).model_dump(mode="json")


@router.post("/api/sessions/{session_id}/contour/approve")
def approve_contour(session_id: str, request: Request) -> dict[str, Any]:
    contour_map = _service(request).approve_contour(session_id)
    return {"status": "approved", "contour_map": contour_map.model_dump(mode="json")}


@router.post("/api/sessions/{session_id}/contour/export")
def export_contour(session_id: str, request: Request) -> dict[str, Any]:
    return _service(request).export_contour(session_id).model_dump(mode="json")


@router.get("/api/sessions/{session_id}/followups")
def list_followups(session_id: str, request: Request) -> list[dict[str, Any]]:
    return [t.model_dump(mode="json") for t in _service(request).list_followups(session_id)]


@router.post("/api/sessions/{session_id}/state")
def apply_state_action(session_id: str, body: StateActionBody, request: Request) -> dict[str, Any]:
    action = StateAction(type=body.type, target=body.target)
    return _service(request).apply_state_action(session_id, action).model_dump(mode="json")


@router.post("/api/sessions/{session_id}/intel")
def gather_intel(session_id: str, request: Request) -> dict[str, Any]:
    return _service(request).gather_intel(session_id).model_dump(mode="json")


@router.post("/api/sessions/{session_id}/premeet")
def send_premeet(session_id: str, request: Request) -> dict[str, Any]:
    premeet, mail = _service(request).send_premeet(session_id)
    return {"request": premeet.model_dump(mode="json"), "delivery": mail.model_dump(mode="json")}


@router.post("/api/sessions/{session_id}/premeet/upload", status_code=201)
def upload_premeet(session_id: str, body: FileBody, request: Request) -> dict[str, Any]:
    artifact = _service(request).upload_premeet_artifact(
        session_id, body.filename, body.mime_type, body.data
    )
    return artifact.model_dump(mode="json")


# ---------------------------------------------------------------------------
# WebSocket
# ---------------------------------------------------------------------------

class ConnectionManager:
    """Tracks open sockets per session so every tab sees the agent's reply."""

    def __init__(self) -> None:
        self.active_connections: dict[str, set[WebSocket]] = {}

    async def connect(self, websocket: WebSocket, session_id: str) -> None:
        await websocket.accept()
        self.active_connections.setdefault(session_id, set()).add(websocket)
        logger.info("WebSocket connected for session %s", session_id)

    def disconnect(self, websocket: WebSocket, session_id: str) -> None:
        sockets = self.active_connections.get(session_id)
        if sockets is not None:
            sockets.discard(websocket)
            if not sockets:
                del self.active_connections[session_id]
        logger.info("WebSocket disconnected for session %s", session_id)

    async def broadcast(self, session_id: str, message: dict[str, Any]) -> None:
        for websocket in list(self.active_connections.get(session_id, ())):
            try:
                await websocket.send_json(message)
            except (WebSocketDisconnect, RuntimeError) as exc:
                logger.debug("Dropping closed WebSocket: %s", exc)
                self.disconnect(websocket, session_id)


async def _handle_ws_message(
    websocket: WebSocket,
    session_id: str,
    raw: str,
    service: OnboardingService,
    manager: ConnectionManager,
) -> None:
    try:
        message = json.loads(raw)
    except ValueError:
        await websocket.send_json({"type": "error", "error": "Invalid JSON"})
        return
    if not isinstance(message, dict) or message.get("type") != "stakeholder_message":
        return

    await websocket.send_json({"type": "typing", "status": True})
    try:
        result = await run_in_threadpool(
            service.send_message,
            session_id,
            str(message.get("content") or ""),
            [f for f in message.get("files") or [] if isinstance(f, dict)],
        )
    except SessionNotFoundError:
        await websocket.send_json({"type": "error", "error": "Session not found"})
    except InvalidRequestError as exc:
        await websocket.send_json({"type": "error", "error": str(exc)})
    except ModelGatewayError as exc:
        logger.error("Turn failed for session %s: %s", session_id, exc)
        await websocket.send_json({"type": "error", "error": "Failed to process message"})
    except Exception:
        logger.exception("Unexpected failure in turn for session %s", session_id)
        await websocket.send_json({"type": "error", "error": "Failed to process message"})
    else:
        await manager.broadcast(session_id, {
            "type": "agent_message",
            "content": result.agent_message,
            **result.model_dump(mode="json", exclude={"agent_message"}),
        })
    finally:
        await websocket.send_json({"type": "typing", "status": False})


def _register_websocket(app: FastAPI, manager: ConnectionManager) -> None:
    @app.websocket("/ws")
    async def realtime(websocket: WebSocket) -> None:
        session_id = websocket.query_params.get("session_id")
        if not session_id:
            await websocket.accept()
            await websocket.close(code=WS_MISSING_SESSION, reason="Missing session_id query parameter")
            return

        await manager.connect(websocket, session_id)
        try:
            while True:
                raw = await websocket.receive_text()
                await _handle_ws_message(websocket, session_id, raw, app.state.service, manager)
        except WebSocketDisconnect:
            pass
        finally:
            manager.disconnect(websocket, session_id)


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------

def create_app(service: OnboardingService) -> FastAPI:
    app = FastAPI(title="Contour Onboarding Agent")
    app.state.service = service
    app.state.connections = ConnectionManager()

    @app.exception_handler(SessionNotFoundError)
    async def _not_found(_: Request, exc: SessionNotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"error": "Session not found"})

    @app.exception_handler(InvalidRequestError)
    async def _bad_request(_: Request, exc: InvalidRequestError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"error": str(exc)})

    @app.exception_handler(ModelGatewayError)
    async def _gateway_failed(_: Request, exc: ModelGatewayError) -> JSONResponse:
        logger.error("Turn failed: %s", exc)
        return JSONResponse(status_code=502, content={"error": "Failed to process message"})

    @app.exception_handler(OnboardingError)
    async def _onboarding_error(_: Request, exc: OnboardingError) -> JSONResponse:
        return JSONResponse(status_code=500, content={"error": str(exc)})

    app.include_router(router)
    _register_websocket(app, app.state.connections)
    return app
