"""HTTP API for DealsHub (FastAPI).

Routes mirror the site's serverless endpoints: webhook ingestion, engagement
tracking, analytics and export, tags, the deal listing, status, and the
scheduled monitor/poll triggers. Every route has an outer guard so handler
failures come back as JSON rather than bare 500 pages.
"""

import hmac
import json
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any

from fastapi import (
    APIRouter,
    Depends,
    FastAPI,
    Header,
    HTTPException,
    Query,
    Request,
    Response,
)
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from src.adapters.amazon_product_client import create_product_client
from src.adapters.email_notifier import EmailNotifier
from src.adapters.repository_factory import create_optional_repository
from src.adapters.telegram_bot_client import TelegramBotClient
from src.adapters.ttl_cache import TTLCache
from src.config.logging_config import get_logger
from src.config.settings import Settings, get_settings
from src.domain.deal_constants import SECRET_TOKEN_HEADER
from src.domain.exceptions import DealsHubError, ValidationError
from src.domain.protocols import (
    NotifierProtocol,
    ProductInfoProtocol,
    RepositoryProtocol,
    TelegramBotClientProtocol,
)
from src.observability.metrics import REQUEST_DURATION_SECONDS
from src.observability.tracing import correlation_scope
from src.use_cases.analytics import analytics_use_case
from src.use_cases.analytics_export import export_analytics_use_case
from src.use_cases.ingest_webhook import ingest_webhook_use_case, verify_webhook_secret
from src.use_cases.list_messages import list_messages_use_case, parse_listing_params
from src.use_cases.manage_tags import (
    add_message_tags,
    get_message_tags,
    list_all_tags,
    remove_message_tag,
)
from src.use_cases.monitor_health import monitor_health_use_case
from src.use_cases.poll_channel import poll_channel_use_case
from src.use_cases.status_summary import public_status, status_summary_use_case
from src.use_cases.track_engagement import (
    MISSING_PARAMS_ERROR,
    track_engagement_use_case,
)

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
UNMATCHED_ROUTE = "unmatched"
STORAGE_UNCONFIGURED = "Storage is not configured"
CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Max-Age": "86400",
}


@dataclass
class AppContainer:
    """Process-wide collaborators shared by all requests."""

    settings: Settings
    repository: RepositoryProtocol | None
    bot_client: TelegramBotClientProtocol | None
    cache: TTLCache
    notifier: NotifierProtocol | None = None
    repository_factory: Callable[[], RepositoryProtocol | None] | None = None
    product_client: ProductInfoProtocol | None = None

    def close(self) -> None:
        if self.repository is not None:
            self.repository.close()


def build_container(settings: Settings) -> AppContainer:
    """Wire adapters from settings."""
    bot_client = (
        TelegramBotClient(
            settings.telegram_bot_token.get_secret_value(),
            base_url=settings.telegram_api_base_url,
            timeout_seconds=settings.telegram_request_timeout_seconds,
        )
        if settings.telegram_bot_token
        else None
    )
    notifier = EmailNotifier(
        recipient=settings.notification_email,
        sender=settings.email_from,
        password=(
            settings.email_password.get_secret_value()
            if settings.email_password
            else None
        ),
        smtp_host=settings.smtp_host,
        smtp_port=settings.smtp_port,
    )
    return AppContainer(
        settings=settings,
        repository=create_optional_repository(settings),
        bot_client=bot_client,
        cache=TTLCache(settings.message_cache_ttl_seconds),
        notifier=notifier,
        repository_factory=lambda: create_optional_repository(settings),
        product_client=create_product_client(settings),
    )


def route_template(request: Request) -> str:
    """Path template of the matched route, or "unmatched" (bounded label set)."""
    route = request.scope.get("route")
    path = getattr(route, "path", None)
    return path if isinstance(path, str) else UNMATCHED_ROUTE


def get_container(request: Request) -> AppContainer:
    container: AppContainer = request.app.state.container
    return container


def _require_repository(container: AppContainer) -> RepositoryProtocol:
    if container.repository is None:
        raise DealsHubError(STORAGE_UNCONFIGURED)
    return container.repository


def is_admin(settings: Settings, authorization: str | None) -> bool:
    """Check a Bearer header against the admin token.

    Without a configured token admin routes are open (a warning is logged).
    """
    if settings.admin_api_token is None:
        logger.warning("admin_token_not_configured")
        return True
    if not authorization:
        return False
    expected = f"Bearer {settings.admin_api_token.get_secret_value()}"
    return hmac.compare_digest(authorization.encode("utf-8"), expected.encode("utf-8"))


def require_admin(
    container: AppContainer = Depends(get_container),
    authorization: str | None = Header(default=None),
) -> None:
    if not is_admin(container.settings, authorization):
        logger.warning("admin_unauthorized")
        raise HTTPException(status_code=401, detail="Unauthorized")


async def _read_json(request: Request) -> Any:
    """Decode the request body; None for an empty body.

    Raises:
        ValueError: On malformed JSON
    """
    body = await request.body()
    if not body:
        return None
    return json.loads(body)


router = APIRouter()


# === Ingestion ===


@router.post("/api/telegram-webhook")
async def telegram_webhook(
    request: Request,
    container: AppContainer = Depends(get_container),
    secret_token: str | None = Header(default=None, alias=SECRET_TOKEN_HEADER),
) -> JSONResponse:
    settings = container.settings
    expected = (
        settings.telegram_webhook_secret.get_secret_value()
        if settings.telegram_webhook_secret
        else None
    )
    if not verify_webhook_secret(secret_token, expected):
        logger.warning("webhook_unauthorized", has_header=secret_token is not None)
        return JSONResponse(
            status_code=401, content={"success": False, "error": "Unauthorized"}
        )

    try:
        update = await _read_json(request)
        repository = _require_repository(container)
        result = await run_in_threadpool(
            ingest_webhook_use_case,
            update,
            repository,
            settings,
            container.bot_client,
            container.cache,
            container.product_client,
        )
    except Exception as exc:
        # Telegram retries non-2xx deliveries; report failures in-band
        logger.exception("webhook_handler_failed", error=str(exc))
        return JSONResponse(content={"success": False, "error": str(exc)})

    if not result.success:
        return JSONResponse(content={"success": False, "error": result.error})
    body: dict[str, Any] = {"success": True, "id": result.message_id}
    if result.duplicate:
        body["duplicate"] = True
    return JSONResponse(content=body)


@router.post("/api/telegram-bot", dependencies=[Depends(require_admin)])
def telegram_bot_poll(
    container: AppContainer = Depends(get_container),
    recovery_attempt: str | None = Header(default=None, alias="x-recovery-attempt"),
) -> JSONResponse:
    if container.bot_client is None or container.repository is None:
        return JSONResponse(
            status_code=503,
            content={
                "success": False,
                "error": "Telegram bot token and storage must be configured",
            },
        )

    logger.info("poll_triggered", recovery_attempt=recovery_attempt == "true")
    result = poll_channel_use_case(
        container.bot_client,
        container.repository,
        container.settings,
        container.cache,
        product_client=container.product_client,
    )
    status_code = 500 if result.error else 200
    return JSONResponse(
        status_code=status_code,
        content={"success": result.error is None, **result.model_dump(mode="json")},
    )


# === Engagement ===


@router.options("/api/track-telegram-engagement")
def engagement_preflight() -> Response:
    return Response(status_code=204, headers=CORS_HEADERS)


@router.post("/api/track-telegram-engagement")
async def track_engagement(
    request: Request, container: AppContainer = Depends(get_container)
) -> JSONResponse:
    try:
        payload = await _read_json(request)
    except ValueError:
        return JSONResponse(
            status_code=400, content={"success": False, "error": "Invalid JSON body"}
        )

    payload = payload if isinstance(payload, dict) else {}
    message_id = payload.get("messageId")
    action = payload.get("action")
    if message_id in (None, "") or not action:
        return JSONResponse(
            status_code=400,
            content={
                "success": False,
                "error": MISSING_PARAMS_ERROR,
                "required": ["messageId", "action"],
            },
        )

    try:
        result = await run_in_threadpool(
            track_engagement_use_case, message_id, action, container.repository
        )
    except ValidationError as exc:
        return JSONResponse(
            status_code=400, content={"success": False, "error": str(exc)}
        )
    except DealsHubError as exc:
        logger.error("engagement_handler_failed", error=str(exc))
        return JSONResponse(
            status_code=500, content={"success": False, "error": str(exc)}
        )

    return JSONResponse(
        status_code=200 if result.success else 400,
        content=result.model_dump(mode="json", exclude_none=True),
    )


# === Analytics ===


@router.get("/api/telegram-analytics")
def telegram_analytics(
    container: AppContainer = Depends(get_container),
    timeframe: str | None = Query(default=None),
    start_date: str | None = Query(default=None, alias="startDate"),
    end_date: str | None = Query(default=None, alias="endDate"),
    limit: str | None = Query(default=None),
    store_filter: str | None = Query(default=None, alias="storeFilter"),
    category_filter: str | None = Query(default=None, alias="categoryFilter"),
    tag_filter: str | None = Query(default=None, alias="tagFilter"),
) -> JSONResponse:
    raw_params = {
        "timeframe": timeframe,
        "startDate": start_date,
        "endDate": end_date,
        "limit": limit,
        "storeFilter": store_filter,
        "categoryFilter": category_filter,
        "tagFilter": tag_filter,
    }
    try:
        payload = analytics_use_case(raw_params, _require_repository(container))
    except ValidationError as exc:
        return JSONResponse(status_code=400, content={"errors": exc.errors})
    except DealsHubError as exc:
        logger.error("analytics_failed", error=str(exc))
        return JSONResponse(
            status_code=500,
            content={"error": "Failed to fetch analytics data", "details": str(exc)},
        )
    return JSONResponse(content=payload)


@router.get("/api/telegram-analytics-export")
def telegram_analytics_export(
    container: AppContainer = Depends(get_container),
    timeframe: str | None = Query(default=None),
    start_date: str | None = Query(default=None, alias="startDate"),
    end_date: str | None = Query(default=None, alias="endDate"),
    export_format: str | None = Query(default=None, alias="format"),
) -> Response:
    raw_params = {
        "timeframe": timeframe,
        "startDate": start_date,
        "endDate": end_date,
        "format": export_format,
    }
    try:
        result = export_analytics_use_case(raw_params, _require_repository(container))
    except ValidationError as exc:
        return JSONResponse(status_code=400, content={"errors": exc.errors})
    except DealsHubError as exc:
        logger.error("analytics_export_failed", error=str(exc))
        return JSONResponse(
            status_code=500,
            content={"error": "Failed to generate export", "details": str(exc)},
        )

    if result["format"] == "csv":
        return Response(
            content=result["csv"],
            media_type="text/csv",
            headers={
                "Content-Disposition": (
                    'attachment; filename="telegram-analytics-export.csv"'
                )
            },
        )
    return JSONResponse(content=result)


# === Tags ===


def _message_id(raw: Any) -> int | None:
    if raw in (None, "") or isinstance(raw, bool):
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


def _tags_error(exc: Exception) -> JSONResponse:
    logger.error("message_tags_failed", error=str(exc))
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "details": str(exc)},
    )


@router.get("/api/telegram-message-tags/all-tags")
def all_message_tags(container: AppContainer = Depends(get_container)) -> JSONResponse:
    try:
        tags = list_all_tags(_require_repository(container))
    except DealsHubError as exc:
        return _tags_error(exc)
    return JSONResponse(content={"success": True, "tags": tags})


@router.get("/api/telegram-message-tags")
def message_tags(
    container: AppContainer = Depends(get_container),
    message_id: str | None = Query(default=None, alias="messageId"),
) -> JSONResponse:
    parsed_id = _message_id(message_id)
    if parsed_id is None:
        return JSONResponse(
            status_code=400, content={"error": "Missing messageId parameter"}
        )
    try:
        tags = get_message_tags(parsed_id, _require_repository(container))
    except DealsHubError as exc:
        return _tags_error(exc)
    if tags is None:
        return JSONResponse(
            status_code=404, content={"success": False, "error": "Message not found"}
        )
    return JSONResponse(
        content={"success": True, "tags": [tag.model_dump(mode="json") for tag in tags]}
    )


@router.post("/api/telegram-message-tags", dependencies=[Depends(require_admin)])
async def add_tags(
    request: Request, container: AppContainer = Depends(get_container)
) -> JSONResponse:
    invalid = JSONResponse(
        status_code=400,
        content={"error": "Invalid request. Required: messageId and tags array"},
    )
    try:
        payload = await _read_json(request)
    except ValueError:
        return invalid
    if not isinstance(payload, dict) or not isinstance(payload.get("tags"), list):
        return invalid
    parsed_id = _message_id(payload.get("messageId"))
    if parsed_id is None:
        return invalid

    try:
        tags = await run_in_threadpool(
            add_message_tags,
            parsed_id,
            payload["tags"],
            _require_repository(container),
        )
    except ValidationError as exc:
        return JSONResponse(status_code=400, content={"error": str(exc)})
    except DealsHubError as exc:
        return _tags_error(exc)
    if tags is None:
        return JSONResponse(
            status_code=404, content={"success": False, "error": "Message not found"}
        )
    return JSONResponse(
        content={"success": True, "tags": [tag.model_dump(mode="json") for tag in tags]}
    )


@router.delete("/api/telegram-message-tags", dependencies=[Depends(require_admin)])
async def delete_tag(
    request: Request, container: AppContainer = Depends(get_container)
) -> JSONResponse:
    invalid = JSONResponse(
        status_code=400,
        content={"error": "Invalid request. Required: messageId and tagName"},
    )
    try:
        payload = await _read_json(request)
    except ValueError:
        return invalid
    if not isinstance(payload, dict):
        return invalid
    parsed_id = _message_id(payload.get("messageId"))
    tag_name = payload.get("tagName")
    if parsed_id is None or not isinstance(tag_name, str) or not tag_name.strip():
        return invalid

    try:
        removed = await run_in_threadpool(
            remove_message_tag, parsed_id, tag_name, _require_repository(container)
        )
    except DealsHubError as exc:
        return _tags_error(exc)
    return JSONResponse(content={"success": True, "deleted": removed})


# === Listing ===


@router.get("/api/telegram-messages")
def telegram_messages(
    request: Request, container: AppContainer = Depends(get_container)
) -> JSONResponse:
    try:
        params = parse_listing_params(dict(request.query_params))
    except ValidationError as exc:
        return JSONResponse(status_code=400, content={"errors": exc.errors})

    result = list_messages_use_case(params, container.repository, container.cache)
    return JSONResponse(
        content=result, headers={"Cache-Control": "public, max-age=60"}
    )


# === Monitoring ===


@router.get("/api/telegram-status")
def telegram_status(
    container: AppContainer = Depends(get_container),
    admin: str | None = Query(default=None),
    authorization: str | None = Header(default=None),
) -> JSONResponse:
    admin_request = admin == "true"
    if admin_request and not is_admin(container.settings, authorization):
        return JSONResponse(status_code=401, content={"error": "Unauthorized"})

    try:
        summary = status_summary_use_case(
            container.repository, container.settings.health_alert_threshold
        )
    except DealsHubError as exc:
        logger.error("status_summary_failed", error=str(exc))
        return JSONResponse(
            status_code=500, content={"status": "error", "error": str(exc)}
        )
    return JSONResponse(content=summary if admin_request else public_status(summary))


@router.post("/api/telegram-monitor", dependencies=[Depends(require_admin)])
def telegram_monitor(container: AppContainer = Depends(get_container)) -> JSONResponse:
    try:
        report = monitor_health_use_case(
            container.repository,
            container.bot_client,
            container.settings,
            notifier=container.notifier,
            repository_factory=container.repository_factory,
        )
    except DealsHubError as exc:
        logger.error("health_monitor_failed", error=str(exc))
        return JSONResponse(status_code=500, content={"error": str(exc)})
    return JSONResponse(content=report)


@router.get("/metrics")
def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


# === Application ===


def create_app(container: AppContainer | None = None) -> FastAPI:
    """Build the FastAPI application.

    Args:
        container: Pre-built collaborators (tests inject stubs here); built
            from get_settings() when omitted
    """
    app_container = container or build_container(get_settings())

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        app_container.close()

    app = FastAPI(title="DealsHub Telegram API", version="1.0.0", lifespan=lifespan)
    app.state.container = app_container

    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_container.settings.cors_allow_origins,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    @app.middleware("http")
    async def correlation_middleware(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        started = time.perf_counter()
        with correlation_scope(
            request.headers.get(REQUEST_ID_HEADER), route=request.url.path
        ) as request_id:
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = request_id
            REQUEST_DURATION_SECONDS.labels(
                route=route_template(request)
            ).observe(time.perf_counter() - started)
            logger.info(
                "http_request_completed",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
            )
        return response

    app.include_router(router)
    return app
