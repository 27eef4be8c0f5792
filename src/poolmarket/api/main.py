"""FastAPI server: trading, listings, admin, and the notification stream."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

import duckdb
import structlog
from fastapi import APIRouter, Depends, FastAPI, Header, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse

from poolmarket.api.schemas import (
    BuyRequest,
    CreateEventRequest,
    CreateEventResponse,
    CreateUserRequest,
    ErrorResponse,
    HealthResponse,
    MessageResponse,
    ResolveRequest,
    SellRequest,
    SetBalanceRequest,
    TradeResponse,
    UpdateEventRequest,
)
from poolmarket.config import Settings, get_settings
from poolmarket.market import views
from poolmarket.market.admin import AdminService
from poolmarket.market.engine import MarketEngine
from poolmarket.market.errors import Forbidden, MarketError, Unauthorized
from poolmarket.models import ActivityEntry, OddsSnapshot, OutcomeOdds, ResolveResult, User
from poolmarket.models.views import EventDetail, EventSummary, HistoryEntry, LeaderboardEntry, Portfolio
from poolmarket.notify.broker import Broker
from poolmarket.storage import activity, snapshots, users
from poolmarket.storage.errors import LockTimeout, StoreError
from poolmarket.storage.store import Store

log = structlog.get_logger(__name__)

_ERRORS = {
    400: {"description": "Rejected operation", "model": ErrorResponse},
    404: {"description": "Unknown user or event", "model": ErrorResponse},
}

router = APIRouter()


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings or get_settings()
    store = Store(settings.db_path, lock_timeout_sec=settings.lock_timeout_sec)
    broker = Broker(queue_size=settings.notify_queue_size)
    admin = AdminService(store, broker, starting_balance=settings.starting_balance)
    admin.bootstrap_admin(settings.admin_username)

    app.state.store = store
    app.state.broker = broker
    app.state.engine = MarketEngine(store, broker)
    app.state.admin = admin
    app.state.keepalive_sec = settings.keepalive_sec
    log.info("api_started", db_path=settings.db_path)

    yield

    store.close()
    log.info("api_stopped")


def _error_json(code: str, message: str, status_code: int = 404) -> JSONResponse:
    """Return consistent error JSON: { detail, code }."""
    return JSONResponse(
        status_code=status_code,
        content={"detail": message, "code": code},
    )


async def _market_error(request: Request, exc: MarketError) -> JSONResponse:
    return _error_json(exc.code, str(exc), exc.status_code)


async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed bodies and parameters get the same error shape as rejected operations."""
    first = (exc.errors() or [{}])[0]
    field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = first.get("msg", "invalid request")
    return _error_json("invalid_request", f"{field}: {message}" if field else message, 422)


async def _store_error(request: Request, exc: Exception) -> JSONResponse:
    log.error("store_failure", path=request.url.path, error=str(exc), error_type=type(exc).__name__)
    if isinstance(exc, LockTimeout):
        return _error_json("store_busy", "store is busy, retry shortly", 503)
    return _error_json("internal_error", "internal store error", 500)


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the app. Without settings, config is loaded at startup."""
    app = FastAPI(title="PoolMarket API", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    origins = settings.cors_origins if settings is not None else ["*"]
    app.add_middleware(CORSMiddleware, allow_origins=origins, allow_methods=["*"], allow_headers=["*"])
    app.add_exception_handler(MarketError, _market_error)
    app.add_exception_handler(RequestValidationError, _validation_error)
    app.add_exception_handler(StoreError, _store_error)
    app.add_exception_handler(duckdb.Error, _store_error)
    app.include_router(router)
    return app


# --- Dependencies ---
def _store(request: Request) -> Store:
    return request.app.state.store


def _engine(request: Request) -> MarketEngine:
    return request.app.state.engine


def _admin(request: Request) -> AdminService:
    return request.app.state.admin


def current_user(request: Request, x_user_id: int | None = Header(None)) -> User:
    """Caller identity from the X-User-Id header."""
    if x_user_id is None:
        raise Unauthorized("missing X-User-Id header")
    with _store(request).reading() as conn:
        user = users.get_user(conn, x_user_id)
    if user is None:
        raise Unauthorized(f"unknown user: {x_user_id}")
    return user


def optional_user(x_user_id: int | None = Header(None)) -> int | None:
    return x_user_id


def admin_user(user: User = Depends(current_user)) -> User:
    if not user.is_admin:
        raise Forbidden("admin only")
    return user


# --- Public ---
@router.get("/health", response_model=HealthResponse)
def health(request: Request) -> HealthResponse:
    return HealthResponse(status="ok", subscribers=request.app.state.broker.subscriber_count)


@router.post("/users", response_model=User, status_code=201, responses=_ERRORS)
def register(body: CreateUserRequest, admin: AdminService = Depends(_admin)) -> User:
    return admin.create_user(body.username)


@router.get("/users/me", response_model=User)
def me(user: User = Depends(current_user)) -> User:
    return user


@router.get("/events", response_model=list[EventSummary])
def events_list(request: Request) -> list[EventSummary]:
    with _store(request).reading() as conn:
        return views.list_events(conn)


@router.get("/events/{event_id}", response_model=EventDetail, responses=_ERRORS)
def event_get(event_id: int, request: Request, user_id: int | None = Depends(optional_user)) -> EventDetail:
    with _store(request).reading() as conn:
        return views.event_detail(conn, event_id, user_id)


@router.get("/events/{event_id}/odds", response_model=list[OutcomeOdds])
def event_odds(event_id: int, engine: MarketEngine = Depends(_engine)) -> list[OutcomeOdds]:
    return engine.get_odds(event_id)


@router.get("/events/{event_id}/odds-history", response_model=list[OddsSnapshot])
def event_odds_history(event_id: int, request: Request) -> list[OddsSnapshot]:
    with _store(request).reading() as conn:
        return snapshots.get_by_event(conn, event_id)


@router.get("/leaderboard", response_model=list[LeaderboardEntry])
def leaderboard(request: Request) -> list[LeaderboardEntry]:
    with _store(request).reading() as conn:
        return views.leaderboard(conn)


@router.get("/activity", response_model=list[ActivityEntry])
def activity_feed(request: Request, limit: int = Query(50, ge=1, le=200)) -> list[ActivityEntry]:
    with _store(request).reading() as conn:
        return activity.recent_activity(conn, limit)


@router.get("/stream")
async def stream(request: Request, user_id: int | None = Query(None)) -> StreamingResponse:
    """Server-sent events. user_id subscribes to personal notifications as well."""
    broker: Broker = request.app.state.broker
    keepalive_sec: float = request.app.state.keepalive_sec
    sub = broker.subscribe(user_id)

    async def events() -> AsyncIterator[str]:
        try:
            yield 'data: {"type":"connected"}\n\n'
            while not await request.is_disconnected():
                message = await sub.next(keepalive_sec)
                if message is None:
                    yield ": keepalive\n\n"
                    continue
                yield f"data: {message}\n\n"
        finally:
            broker.unsubscribe(sub)

    return StreamingResponse(
        events(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


# --- Trading (authenticated) ---
@router.post("/events/{event_id}/buy", response_model=TradeResponse, responses=_ERRORS)
def buy(
    event_id: int,
    body: BuyRequest,
    user: User = Depends(current_user),
    engine: MarketEngine = Depends(_engine),
) -> TradeResponse:
    receipt = engine.buy(user.user_id, event_id, body.outcome_id, body.amount)
    return TradeResponse(
        message="purchase successful",
        shares=receipt.shares,
        points=receipt.points,
        balance=receipt.balance,
        odds=receipt.odds,
    )


@router.post("/events/{event_id}/sell", response_model=TradeResponse, responses=_ERRORS)
def sell(
    event_id: int,
    body: SellRequest,
    user: User = Depends(current_user),
    engine: MarketEngine = Depends(_engine),
) -> TradeResponse:
    receipt = engine.sell(user.user_id, event_id, body.outcome_id, body.shares)
    return TradeResponse(
        message="sale successful",
        shares=receipt.shares,
        points=receipt.points,
        balance=receipt.balance,
        odds=receipt.odds,
    )


@router.get("/portfolio", response_model=Portfolio)
def portfolio(request: Request, user: User = Depends(current_user)) -> Portfolio:
    with _store(request).reading() as conn:
        return views.portfolio(conn, user.user_id)


@router.get("/users/{user_id}/history", response_model=list[HistoryEntry], responses=_ERRORS)
def user_history(user_id: int, request: Request, user: User = Depends(current_user)) -> list[HistoryEntry]:
    """Own history only, unless the caller is an admin."""
    if user.user_id != user_id and not user.is_admin:
        raise Forbidden("you can only view your own history")
    with _store(request).reading() as conn:
        return views.history(conn, user_id)


# --- Admin ---
@router.get("/admin/users", response_model=list[User])
def admin_users(request: Request, _: User = Depends(admin_user)) -> list[User]:
    with _store(request).reading() as conn:
        return users.list_users(conn)


@router.post("/admin/users/{user_id}/balance", response_model=User, responses=_ERRORS)
def admin_set_balance(
    user_id: int,
    body: SetBalanceRequest,
    _: User = Depends(admin_user),
    admin: AdminService = Depends(_admin),
) -> User:
    return admin.set_balance(user_id, body.balance)


@router.post("/admin/events", response_model=CreateEventResponse, status_code=201, responses=_ERRORS)
def admin_create_event(
    body: CreateEventRequest,
    _: User = Depends(admin_user),
    admin: AdminService = Depends(_admin),
) -> CreateEventResponse:
    event, odds = admin.create_event(body.title, body.description, body.event_type, body.outcomes)
    return CreateEventResponse(event=event, odds=odds)


@router.put("/admin/events/{event_id}", response_model=MessageResponse, responses=_ERRORS)
def admin_update_event(
    event_id: int,
    body: UpdateEventRequest,
    _: User = Depends(admin_user),
    admin: AdminService = Depends(_admin),
) -> MessageResponse:
    admin.update_event(event_id, body.title, body.description, body.outcomes)
    return MessageResponse(message="event updated")


@router.delete("/admin/events/{event_id}", response_model=MessageResponse, responses=_ERRORS)
def admin_delete_event(
    event_id: int,
    _: User = Depends(admin_user),
    admin: AdminService = Depends(_admin),
) -> MessageResponse:
    admin.delete_event(event_id)
    return MessageResponse(message="event deleted")


@router.post("/admin/events/{event_id}/resolve", response_model=ResolveResult, responses=_ERRORS)
def admin_resolve_event(
    event_id: int,
    body: ResolveRequest,
    _: User = Depends(admin_user),
    engine: MarketEngine = Depends(_engine),
) -> ResolveResult:
    return engine.resolve(event_id, body.winning_outcome_id)


@router.post("/admin/events/{event_id}/unresolve", response_model=MessageResponse, responses=_ERRORS)
def admin_unresolve_event(
    event_id: int,
    _: User = Depends(admin_user),
    admin: AdminService = Depends(_admin),
) -> MessageResponse:
    admin.unresolve_event(event_id)
    return MessageResponse(message="event unresolved")


app = create_app()


def run_api(settings: Settings, host: str | None = None, port: int | None = None) -> None:
    """Serve an app built from settings; host/port override the [api] section."""
    import uvicorn

    uvicorn.run(
        create_app(settings),
        host=host or settings.api_host,
        port=port or settings.api_port,
        reload=False,
    )
