"""
HTTP API and broadcast progress WebSocket.

Run with ``congregation-hub serve`` or
``uvicorn congregation_hub.backend.main:app``.
"""

import asyncio
import json
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set

import psutil
from fastapi import Body, Depends, FastAPI, Header, HTTPException, Request, WebSocket, WebSocketDisconnect, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.websockets import WebSocketState

from .. import config
from ..__version__ import __version__
from ..core.db import get_supabase_client
from ..core.http_client import cleanup_http_client
from ..core.logger import get_logger
from ..errors import (
    BroadcastValidationError,
    ConfigurationError,
    CongregationHubError,
    ExternalServiceError,
    NotFoundError,
    ValidationError,
)
from ..messaging import BroadcastManager, BroadcastRequest, Recipient, Sender, build_channel
from ..messaging.models import CHANNEL_DIRECT_MESSAGE, AttachedNote, Attachment
from ..services import (
    ConversationService,
    DistrictService,
    EventService,
    FamilyService,
    MemberService,
    MinistryService,
    NotificationService,
    PaymentService,
    PipelineBoardService,
    PlacesService,
    VisitorService,
)

logger = get_logger(__name__)


class ServiceRegistry:
    """One instance of every service, sharing a single store client."""

    def __init__(self, client=None):
        self.client = client
        self.members = MemberService(client)
        self.families = FamilyService(client, self.members)
        self.districts = DistrictService(client, self.members)
        self.ministries = MinistryService(client, self.members)
        self.notifications = NotificationService(client)
        self.conversations = ConversationService(client)
        self.boards = PipelineBoardService(client)
        self.visitors = VisitorService(client, self.boards, self.notifications)
        self.events = EventService(client)
        self.payments = PaymentService(client, self.events)
        self.places = PlacesService()


_services: Optional[ServiceRegistry] = None


def get_services() -> ServiceRegistry:
    global _services
    if _services is None:
        _services = ServiceRegistry(get_supabase_client())
    return _services


class ConnectionManager:
    """Tracks WebSocket subscribers and fans broadcast updates out to them."""

    def __init__(self):
        self.websocket_connections: Set[WebSocket] = set()
        self.start_time = time.time()

    async def add_connection(self, websocket: WebSocket, initial: Optional[Dict] = None):
        self.websocket_connections.add(websocket)
        logger.info(f"🔌 WebSocket connection added. Total: {len(self.websocket_connections)}")
        if initial is not None:
            await self.send_to_connection(websocket, initial)

    async def remove_connection(self, websocket: WebSocket):
        self.websocket_connections.discard(websocket)
        logger.info(f"🔌 WebSocket connection removed. Total: {len(self.websocket_connections)}")

    async def send_to_connection(self, websocket: WebSocket, message: Dict):
        try:
            if websocket.client_state == WebSocketState.CONNECTED:
                await websocket.send_text(json.dumps(message))
        except Exception as e:
            logger.warning(f"Error sending message to WebSocket: {e}")
            await self.remove_connection(websocket)

    async def broadcast(self, message: Dict):
        """Send ``message`` to every connected client, dropping dead sockets."""
        if not self.websocket_connections:
            return

        disconnected = set()
        for websocket in self.websocket_connections.copy():
            try:
                if websocket.client_state == WebSocketState.CONNECTED:
                    await websocket.send_text(json.dumps(message))
                else:
                    disconnected.add(websocket)
            except Exception as e:
                logger.warning(f"Error broadcasting to WebSocket: {e}")
                disconnected.add(websocket)

        for ws in disconnected:
            await self.remove_connection(ws)

    def get_system_health(self) -> Dict[str, Any]:
        try:
            cpu_percent = psutil.cpu_percent(interval=None)
            memory = psutil.virtual_memory()
            status = "healthy"
            if cpu_percent > 80 or memory.percent > 85:
                status = "warning"
            return {
                "status": status,
                "cpu_usage": round(cpu_percent, 1),
                "memory_usage": round(memory.percent, 1),
                "uptime": round(time.time() - self.start_time),
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }
        except Exception as e:
            logger.error(f"Error getting system health: {e}")
            return {"status": "error", "timestamp": datetime.now(timezone.utc).isoformat()}


connection_manager = ConnectionManager()


def _build_channel(name: str):
    if name == CHANNEL_DIRECT_MESSAGE:
        services = get_services()
        return build_channel(
            name, conversation_service=services.conversations, notification_service=services.notifications
        )
    return build_channel(name)


broadcast_manager = BroadcastManager(notifier=connection_manager, channel_factory=_build_channel)


def get_broadcast_manager() -> BroadcastManager:
    return broadcast_manager


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle application startup and shutdown"""
    config.validate_config()
    logger.info(f"⛪ Congregation Hub API v{__version__} started")
    logger.info("📡 Broadcast progress available at: /ws/broadcasts")

    yield

    await broadcast_manager.shutdown()
    cleanup_http_client()
    logger.info("🛑 Shutting down Congregation Hub API")


app = FastAPI(title="Congregation Hub", version=__version__, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Error mapping ---


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(ExternalServiceError)
async def external_service_handler(request: Request, exc: ExternalServiceError):
    logger.error(f"❌ {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=502, content={"detail": "An external service failed. Please try again."})


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    logger.error(f"❌ {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=503, content={"detail": str(exc)})


@app.exception_handler(CongregationHubError)
async def app_error_handler(request: Request, exc: CongregationHubError):
    logger.error(f"❌ {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"detail": "Internal error"})


# --- Identity ---


def resolve_session(token: str, services: ServiceRegistry) -> Dict[str, Any]:
    """Looks up the user behind a store session JWT."""
    client = services.client or get_supabase_client()
    if client is None:
        raise ConfigurationError("Supabase client is not configured (SUPABASE_URL / SUPABASE_KEY)")

    try:
        response = client.auth.get_user(token)
    except Exception as e:
        logger.warning(f"🔒 Rejected session token: {e}")
        raise HTTPException(status_code=401, detail="Invalid session")

    user = getattr(response, "user", None)
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid session")

    metadata = getattr(user, "user_metadata", None) or {}
    return {
        "id": user.id,
        "email": getattr(user, "email", None),
        "name": metadata.get("full_name") or metadata.get("name") or getattr(user, "email", None) or "Admin",
        "avatar_url": metadata.get("avatar_url"),
    }


def get_current_user(
    authorization: Optional[str] = Header(None),
    services: ServiceRegistry = Depends(get_services),
) -> Dict[str, Any]:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail="Not signed in")
    return resolve_session(authorization.split(" ", 1)[1].strip(), services)


def require_admin(
    user: Dict[str, Any] = Depends(get_current_user),
    services: ServiceRegistry = Depends(get_services),
) -> Dict[str, Any]:
    """Signed-in user whose member record has ``role == "admin"``."""
    if not services.members.is_admin(user["id"]):
        logger.warning(f"🔒 {user['id']} tried an admin action")
        raise HTTPException(status_code=403, detail="Admin access required")
    return user


# --- Health ---


@app.get("/api")
def read_root():
    return {"message": "Congregation Hub API", "version": __version__}


@app.get("/api/health")
def health(manager: BroadcastManager = Depends(get_broadcast_manager)):
    running = [job for job in manager.list() if job["status"] == "running"]
    return {
        "version": __version__,
        **connection_manager.get_system_health(),
        "websocket_connections": len(connection_manager.websocket_connections),
        "running_broadcasts": len(running),
    }


# --- Members ---


@app.get("/api/members")
def list_members(
    church_id: Optional[str] = None,
    district_id: Optional[str] = None,
    family_id: Optional[str] = None,
    ministry_id: Optional[str] = None,
    search: Optional[str] = None,
    services: ServiceRegistry = Depends(get_services),
    user: Dict = Depends(get_current_user),
):
    return services.members.list_members(church_id, district_id, family_id, ministry_id, search)


@app.post("/api/members", status_code=201)
def create_member(
    data: dict = Body(...), services: ServiceRegistry = Depends(get_services), user: Dict = Depends(require_admin)
):
    return services.members.create_member(data)


@app.get("/api/members/{member_id}")
def get_member(member_id: str, services: ServiceRegistry = Depends(get_services), user: Dict = Depends(get_current_user)):
    return services.members.require_member(member_id)


@app.patch("/api/members/{member_id}")
def update_member(
    member_id: str,
    updates: dict = Body(...),
    services: ServiceRegistry = Depends(get_services),
    user: Dict = Depends(require_admin),
):
    return services.members.update_member(member_id, updates)


@app.delete("/api/members/{member_id}", status_code=204)
def delete_member(member_id: str, services: ServiceRegistry = Depends(get_services), user: Dict = Depends(require_admin)):
    services.members.delete_member(member_id)


# --- Families ---


@app.get("/api/families")
def list_families(
    church_id: Optional[str] = None, services: ServiceRegistry = Depends(get_services), user: Dict = Depends(get_current_user)
):
    return services.families.list_families(church_id)


@app.post("/api/families", status_code=201)
def create_family(
    data: dict = Body(...), services: ServiceRegistry = Depends(get_services), user: Dict = Depends(require_admin)
):
    return services.families.create_family(data, created_by=user["id"])


@app.get("/api/families/{family_id}")
def get_family(family_id: str, services: ServiceRegistry = Depends(get_services), user: Dict = Depends(get_current_user)):
    family = services.families.get_family(family_id)
    if family is None:
        raise NotFoundError("families", family_id)
    return {**family, "members": services.families.get_family_members(family_id)}


@app.patch("/api/families/{family_id}")
def update_family(
    family_id: str,
    updates: dict = Body(...),
    services: ServiceRegistry = Depends(get_services),
    user: Dict = Depends(require_admin),
):
    return services.families.update_family(family_id, updates)


@app.post("/api/families/{family_id}/members")
def link_family_member(
    family_id: str,
    data: dict = Body(...),
    services: ServiceRegistry = Depends(get_services),
    user: Dict = Depends(require_admin),
):
    return services.families.link_member(data.get("member_id"), family_id, data.get("role", "other"))


@app.delete("/api/families/{family_id}/members/{member_id}", status_code=204)
def unlink_family_member(
    family_id: str, member_id: str, services: ServiceRegistry = Depends(get_services), user: Dict = Depends(require_admin)
):
    services.families.unlink_member(member_id, family_id)


# --- Districts ---


@app.get("/api/districts")
def list_districts(
    church_id: Optional[str] = None, services: ServiceRegistry = Depends(get_services), user: Dict = Depends(get_current_user)
):
    return services.districts.list_districts(church_id or config.DEFAULT_CHURCH_ID)


@app.post("/api/districts", status_code=201)
def create_district(
    data: dict = Body(...), services: ServiceRegistry = Depends(get_services), user: Dict = Depends(require_admin)
):
    return services.districts.create_district({"church_id": config.DEFAULT_CHURCH_ID, **data}, created_by=user["id"])


@app.post("/api/districts/assign")
def assign_districts(
    data: dict = Body(...), services: ServiceRegistry = Depends(get_services), user: Dict = Depends(require_admin)
):
    """Plans automatic assignments; writes them only when ``apply`` is true."""
    proposals = services.districts.plan_assignments(
        data.get("church_id") or config.DEFAULT_CHURCH_ID, data.get("method", "manual"), bool(data.get("reassign"))
    )
    applied = services.districts.apply_assignments(proposals) if data.get("apply") else 0
    return {"proposals": [p.to_dict() for p in proposals], "applied": applied}


@app.get("/api/districts/{district_id}")
def get_district(district_id: str, services: ServiceRegistry = Depends(get_services), user: Dict = Depends(get_current_user)):
    district = services.districts.get_district(district_id)
    if district is None:
        raise NotFoundError("districts", district_id)
    return district


@app.patch("/api/districts/{district_id}")
def update_district(
    district_id: str,
    updates: dict = Body(...),
    services: ServiceRegistry = Depends(get_services),
    user: Dict = Depends(require_admin),
):
    return services.districts.update_district(district_id, updates)


@app.delete("/api/districts/{district_id}")
def delete_district(district_id: str, services: ServiceRegistry = Depends(get_services), user: Dict = Depends(require_admin)):
    return services.districts.delete_district(district_id)


@app.post("/api/districts/{district_id}/members")
def add_district_member(
    district_id: str,
    data: dict = Body(...),
    services: ServiceRegistry = Depends(get_services),
    user: Dict = Depends(require_admin),
):
    return services.districts.add_member(district_id, data.get("member_id"), data.get("role", "member"))


@app.delete("/api/districts/{district_id}/members/{member_id}")
def remove_district_member(
    district_id: str, member_id: str, services: ServiceRegistry = Depends(get_services), user: Dict = Depends(require_admin)
):
    return services.districts.remove_member(district_id, member_id)


# --- Ministries ---


@app.get("/api/ministries")
def list_ministries(
    church_id: Optional[str] = None, services: ServiceRegistry = Depends(get_services), user: Dict = Depends(get_current_user)
):
    return services.ministries.list_ministries(church_id)


@app.post("/api/ministries", status_code=201)
def create_ministry(
    data: dict = Body(...), services: ServiceRegistry = Depends(get_services), user: Dict = Depends(require_admin)
):
    return services.ministries.create_ministry(data, created_by=user["id"])


@app.get("/api/ministries/{ministry_id}")
def get_ministry(ministry_id: str, services: ServiceRegistry = Depends(get_services), user: Dict = Depends(get_current_user)):
    ministry = services.ministries.get_ministry(ministry_id)
    if ministry is None:
        raise NotFoundError("ministries", ministry_id)
    return ministry


@app.patch("/api/ministries/{ministry_id}")
def update_ministry(
    ministry_id: str,
    updates: dict = Body(...),
    services: ServiceRegistry = Depends(get_services),
    user: Dict = Depends(require_admin),
):
    return services.ministries.update_ministry(ministry_id, updates)


@app.delete("/api/ministries/{ministry_id}")
def delete_ministry(ministry_id: str, services: ServiceRegistry = Depends(get_services), user: Dict = Depends(require_admin)):
    return services.ministries.delete_ministry(ministry_id)


@app.post("/api/ministries/{ministry_id}/members")
def add_ministry_member(
    ministry_id: str,
    data: dict = Body(...),
    services: ServiceRegistry = Depends(get_services),
    user: Dict = Depends(require_admin),
):
    return services.ministries.add_member(ministry_id, data.get("member_id"), bool(data.get("as_leader")))


@app.delete("/api/ministries/{ministry_id}/members/{member_id}")
def remove_ministry_member(
    ministry_id: str, member_id: str, services: ServiceRegistry = Depends(get_services), user: Dict = Depends(require_admin)
):
    return services.ministries.remove_member(ministry_id, member_id)


# --- Visitors & pipeline ---


@app.post("/api/connect", status_code=201)
def submit_connect_card(data: dict = Body(...), services: ServiceRegistry = Depends(get_services)):
    """Public connect card form."""
    visitor = services.visitors.submit_connect_card(data)
    return {"id": visitor["id"], "status": visitor["status"]}


@app.get("/api/visitors")
def list_visitors(
    board_id: Optional[str] = None,
    status: Optional[str] = None,
    recent: bool = False,
    services: ServiceRegistry = Depends(get_services),
    user: Dict = Depends(require_admin),
):
    if recent:
        return services.visitors.recent_visitors()
    return services.visitors.list_visitors(board_id, status)


@app.patch("/api/visitors/{visitor_id}/stage")
def move_visitor(
    visitor_id: str,
    data: dict = Body(...),
    services: ServiceRegistry = Depends(get_services),
    user: Dict = Depends(require_admin),
):
    return services.visitors.move_visitor(visitor_id, data.get("stage_id"), actor=user["id"])


@app.patch("/api/visitors/{visitor_id}/status")
def update_visitor_status(
    visitor_id: str,
    data: dict = Body(...),
    services: ServiceRegistry = Depends(get_services),
    user: Dict = Depends(require_admin),
):
    return services.visitors.update_status(visitor_id, data.get("status"), actor=user["id"])


@app.delete("/api/visitors/{visitor_id}", status_code=204)
def delete_visitor(visitor_id: str, services: ServiceRegistry = Depends(get_services), user: Dict = Depends(require_admin)):
    services.visitors.delete_visitor(visitor_id)


@app.get("/api/pipeline/boards")
def list_boards(services: ServiceRegistry = Depends(get_services), user: Dict = Depends(require_admin)):
    return services.boards.list_boards()


@app.post("/api/pipeline/boards", status_code=201)
def create_board(
    data: dict = Body(...), services: ServiceRegistry = Depends(get_services), user: Dict = Depends(require_admin)
):
    return services.boards.create_board(
        data.get("name", ""),
        created_by=user["id"],
        type=data.get("type", "custom"),
        stages=data.get("stages"),
        linked_event_id=data.get("linked_event_id"),
    )


@app.get("/api/pipeline/boards/{board_id}")
def get_board(board_id: str, services: ServiceRegistry = Depends(get_services), user: Dict = Depends(require_admin)):
    return services.boards.require_board(board_id)


@app.patch("/api/pipeline/boards/{board_id}")
def update_board(
    board_id: str,
    updates: dict = Body(...),
    services: ServiceRegistry = Depends(get_services),
    user: Dict = Depends(require_admin),
):
    return services.boards.update_board(board_id, updates)


@app.post("/api/pipeline/boards/{board_id}/archive")
def archive_board(board_id: str, services: ServiceRegistry = Depends(get_services), user: Dict = Depends(require_admin)):
    return services.boards.archive_board(board_id)


@app.get("/api/pipeline/boards/{board_id}/kanban")
def board_kanban(board_id: str, services: ServiceRegistry = Depends(get_services), user: Dict = Depends(require_admin)):
    board = services.boards.require_board(board_id)
    return {"board": board, "columns": services.visitors.group_by_stage(board)}


@app.post("/api/pipeline/boards/{board_id}/stages")
def add_stage(
    board_id: str,
    data: dict = Body(...),
    services: ServiceRegistry = Depends(get_services),
    user: Dict = Depends(require_admin),
):
    return services.boards.add_stage(board_id, data.get("name", ""), data.get("color", "#6B7280"))


@app.put("/api/pipeline/boards/{board_id}/stages/order")
def reorder_stages(
    board_id: str,
    data: dict = Body(...),
    services: ServiceRegistry = Depends(get_services),
    user: Dict = Depends(require_admin),
):
    return services.boards.reorder_stages(board_id, data.get("stage_ids") or [])


@app.patch("/api/pipeline/boards/{board_id}/stages/{stage_id}")
def update_stage(
    board_id: str,
    stage_id: str,
    updates: dict = Body(...),
    services: ServiceRegistry = Depends(get_services),
    user: Dict = Depends(require_admin),
):
    return services.boards.update_stage(board_id, stage_id, updates)


@app.delete("/api/pipeline/boards/{board_id}/stages/{stage_id}")
def delete_stage(
    board_id: str, stage_id: str, services: ServiceRegistry = Depends(get_services), user: Dict = Depends(require_admin)
):
    return services.boards.delete_stage(board_id, stage_id)


# --- Events, registrations & payments ---


def whole_number(data: Dict[str, Any], field: str, default: int = 1) -> int:
    value = data.get(field, default)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value)
    raise ValidationError(f"'{field}' must be a whole number")


@app.get("/api/events")
def list_events(
    church_id: Optional[str] = None,
    include_past: bool = False,
    services: ServiceRegistry = Depends(get_services),
    user: Dict = Depends(get_current_user),
):
    return services.events.list_events(church_id, upcoming_only=not include_past)


@app.post("/api/events", status_code=201)
def create_event(
    data: dict = Body(...), services: ServiceRegistry = Depends(get_services), user: Dict = Depends(require_admin)
):
    return services.events.create_event(data)


@app.get("/api/events/{event_id}")
def get_event(event_id: str, services: ServiceRegistry = Depends(get_services), user: Dict = Depends(get_current_user)):
    return services.events.require_event(event_id)


@app.patch("/api/events/{event_id}")
def update_event(
    event_id: str,
    updates: dict = Body(...),
    services: ServiceRegistry = Depends(get_services),
    user: Dict = Depends(require_admin),
):
    return services.events.update_event(event_id, updates)


@app.delete("/api/events/{event_id}", status_code=204)
def delete_event(event_id: str, services: ServiceRegistry = Depends(get_services), user: Dict = Depends(require_admin)):
    services.events.delete_event(event_id)


@app.get("/api/events/{event_id}/registrations")
def list_registrations(event_id: str, services: ServiceRegistry = Depends(get_services), user: Dict = Depends(require_admin)):
    return services.events.list_registrations(event_id)


@app.post("/api/events/{event_id}/register", status_code=201)
def register_for_event(
    event_id: str,
    data: dict = Body(default={}),
    services: ServiceRegistry = Depends(get_services),
    user: Dict = Depends(get_current_user),
):
    return services.events.register_free(
        event_id,
        user,
        quantity=whole_number(data, "quantity"),
        ticket_type=data.get("ticket_type", "general"),
        answers=data.get("answers"),
    )


@app.post("/api/registrations/{registration_id}/cancel")
def cancel_registration(
    registration_id: str, services: ServiceRegistry = Depends(get_services), user: Dict = Depends(get_current_user)
):
    registration = services.events.get_registration(registration_id)
    if registration is None:
        raise NotFoundError("registrations", registration_id)
    if registration.get("user_id") != user["id"] and not services.members.is_admin(user["id"]):
        raise HTTPException(status_code=403, detail="Not your registration")
    return services.events.cancel_registration(registration_id)


@app.post("/api/events/{event_id}/quote")
def quote_event(
    event_id: str,
    data: dict = Body(default={}),
    services: ServiceRegistry = Depends(get_services),
    user: Dict = Depends(get_current_user),
):
    quote = services.payments.quote(
        event_id,
        quantity=whole_number(data, "quantity"),
        tip_percentage=data.get("tip_percentage", 0.03),
        custom_tip=data.get("custom_tip"),
    )
    return quote.to_dict()


@app.post("/api/events/{event_id}/payment-intent")
def create_payment_intent(
    event_id: str,
    data: dict = Body(...),
    services: ServiceRegistry = Depends(get_services),
    user: Dict = Depends(get_current_user),
):
    return services.payments.create_event_payment_intent(
        event_id,
        amount=data.get("amount"),
        tip_amount=data.get("tip_amount", 0),
        quantity=whole_number(data, "quantity"),
        ticket_type=data.get("ticket_type", "general"),
        church_id=data.get("church_id"),
        user=user,
        registration_data=data.get("registration_data"),
    )


@app.post("/api/stripe/webhook")
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None),
    services: ServiceRegistry = Depends(get_services),
):
    payload = await request.body()
    return await asyncio.to_thread(services.payments.handle_webhook, payload, stripe_signature or "")


# --- Places ---


@app.get("/api/places/autocomplete")
def places_autocomplete(
    q: str = "", services: ServiceRegistry = Depends(get_services), user: Dict = Depends(get_current_user)
):
    return services.places.autocomplete(q)


@app.get("/api/places/{place_id}")
def places_resolve(place_id: str, services: ServiceRegistry = Depends(get_services), user: Dict = Depends(get_current_user)):
    address = services.places.resolve(place_id)
    if address is None:
        raise NotFoundError("places", place_id)
    return address.to_dict()


# --- Notifications ---


@app.get("/api/notifications")
def list_notifications(
    unread_only: bool = False, services: ServiceRegistry = Depends(get_services), user: Dict = Depends(get_current_user)
):
    return services.notifications.list_for_user(user["id"], unread_only)


@app.post("/api/notifications/{notification_id}/read")
def mark_notification_read(
    notification_id: str, services: ServiceRegistry = Depends(get_services), user: Dict = Depends(get_current_user)
):
    notification = services.notifications.get_notification(notification_id)
    if notification is None or notification.get("user_id") != user["id"]:
        raise NotFoundError("notifications", notification_id)
    return services.notifications.mark_read(notification_id)


# --- Broadcasts ---


def _is_text(value: Any, required: bool = False) -> bool:
    if value is None:
        return not required
    return isinstance(value, str) and (bool(value.strip()) or not required)


def parse_attachments(data: Dict[str, Any]) -> List[Attachment]:
    raw = data.get("attachments") or []
    if not isinstance(raw, list):
        raise BroadcastValidationError("Attachments must be a list")

    attachments = []
    for item in raw:
        if not (
            isinstance(item, dict)
            and _is_text(item.get("name"), required=True)
            and _is_text(item.get("url"), required=True)
            and _is_text(item.get("type"))
        ):
            raise BroadcastValidationError("Each attachment needs a name and a url")
        attachments.append(Attachment(name=item["name"], url=item["url"], type=item.get("type") or "application/octet-stream"))
    return attachments


def parse_note(data: Dict[str, Any]) -> Optional[AttachedNote]:
    note = data.get("note")
    if not note:
        return None
    if not (
        isinstance(note, dict)
        and _is_text(note.get("id"), required=True)
        and _is_text(note.get("title"))
        and _is_text(note.get("content"))
    ):
        raise BroadcastValidationError("An attached note needs an id")
    return AttachedNote(id=note["id"], title=note.get("title"), content=note.get("content") or "")


def resolve_recipients(data: Dict[str, Any], services: ServiceRegistry) -> List[Recipient]:
    """Recipients from explicit ``member_ids``, a ``district_id`` or inline ``recipients``."""
    member_ids = data.get("member_ids")
    if member_ids:
        if not isinstance(member_ids, list) or not all(isinstance(m, str) for m in member_ids):
            raise BroadcastValidationError("member_ids must be a list of ids")
        by_id = {m["id"]: m for m in services.members.get_members(member_ids)}
        return [Recipient.from_member(by_id[m]) for m in member_ids if m in by_id]

    if data.get("district_id"):
        return [Recipient.from_member(m) for m in services.members.list_members(district_id=str(data["district_id"]))]

    inline = data.get("recipients") or []
    if not isinstance(inline, list) or not all(isinstance(r, dict) for r in inline):
        raise BroadcastValidationError("recipients must be a list of objects")
    return [Recipient(id=r.get("id"), name=r.get("name") or "Unknown", email=r.get("email")) for r in inline]


@app.post("/api/broadcasts", status_code=202)
async def start_broadcast(
    data: dict = Body(...),
    x_google_access_token: Optional[str] = Header(None),
    services: ServiceRegistry = Depends(get_services),
    manager: BroadcastManager = Depends(get_broadcast_manager),
    user: Dict = Depends(require_admin),
):
    attachments = parse_attachments(data)
    note = parse_note(data)
    recipients = await asyncio.to_thread(resolve_recipients, data, services)
    request = BroadcastRequest(
        channel=str(data.get("channel", "email")),
        body=data.get("body") if isinstance(data.get("body"), str) else "",
        subject=data.get("subject") if isinstance(data.get("subject"), str) else None,
        recipients=recipients,
        sender=Sender(id=user["id"], name=user.get("name") or "Admin", avatar_url=user.get("avatar_url")),
        google_access_token=x_google_access_token or data.get("google_access_token"),
        attachments=attachments,
        note=note,
    )
    return await manager.start(request, created_by=user["id"])


@app.get("/api/broadcasts")
def list_broadcasts(manager: BroadcastManager = Depends(get_broadcast_manager), user: Dict = Depends(require_admin)):
    return manager.list()


@app.get("/api/broadcasts/{job_id}")
def get_broadcast(
    job_id: str, manager: BroadcastManager = Depends(get_broadcast_manager), user: Dict = Depends(require_admin)
):
    return manager.get(job_id)


async def _websocket_admin(token: Optional[str], services: ServiceRegistry) -> Optional[Dict[str, Any]]:
    if not token:
        return None
    try:
        user = await asyncio.to_thread(resolve_session, token, services)
        if await asyncio.to_thread(services.members.is_admin, user["id"]):
            return user
    except (HTTPException, CongregationHubError) as e:
        logger.warning(f"🔒 WebSocket sign-in failed: {e}")
    return None


@app.websocket("/ws/broadcasts")
async def websocket_broadcasts(
    websocket: WebSocket, token: Optional[str] = None, services: ServiceRegistry = Depends(get_services)
):
    """
    Streams ``broadcast_progress`` and ``broadcast_complete`` messages.

    Admins only; the session JWT goes in the ``token`` query parameter.
    """
    if await _websocket_admin(token, services) is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    await connection_manager.add_connection(websocket, {"type": "broadcast_list", "payload": broadcast_manager.list()})

    try:
        while True:
            try:
                data = await websocket.receive_text()
                message = json.loads(data)
                if isinstance(message, dict) and message.get("type") == "ping":
                    await websocket.send_text(json.dumps({"type": "pong"}))
            except WebSocketDisconnect:
                break
            except json.JSONDecodeError:
                continue
    finally:
        await connection_manager.remove_connection(websocket)
