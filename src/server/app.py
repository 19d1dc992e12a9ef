"""FastAPI application serving the Messenger webhook."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.responses import PlainTextResponse

from src.audit.logger import AuditLogger
from src.clients.catalog_search import CatalogSearchClient
from src.clients.completion import CompletionClient
from src.clients.send_api import MessengerSendClient
from src.config import AppConfig, load_config
from src.dispatch.dispatcher import (
    CatalogSearch,
    MessageSender,
    ReplyDispatcher,
    TextCompletion,
)
from src.webhook.ingress import WebhookIngress
from src.webhook.messenger import MessengerWebhook
from src.webhook.models import WebhookResponse
from src.webhook.rate_limiter import SenderRateLimiter
from src.webhook.signature import SIGNATURE_HEADER

logger = logging.getLogger(__name__)

_ALLOWED_METHODS = "GET, POST"


def create_app_from_env() -> FastAPI:
    """Factory for uvicorn --factory: reads config from environment variables.

    Raises ConfigurationError when a required secret is missing, so the
    process never starts serving traffic half-configured.
    """
    config = load_config()
    logging.basicConfig(level=config.log_level)

    audit_logger = AuditLogger.from_config(config)
    completion: CompletionClient | None = None
    if config.openai_api_key:
        completion = CompletionClient(
            api_key=config.openai_api_key,
            base_url=config.openai_base_url,
            model=config.openai_model,
            max_input_chars=config.max_message_chars,
        )
    else:
        logger.warning("OPENAI_API_KEY not set; text messages will not be answered")

    catalog_search: CatalogSearchClient | None = None
    if config.catalog_search_enabled:
        catalog_search = CatalogSearchClient(
            vertex_project_id=config.vertex_project_id or "",
            supabase_url=config.supabase_url or "",
            supabase_service_key=config.supabase_service_key or "",
            vertex_location=config.vertex_location,
            tenant_id=config.catalog_tenant_id,
        )
    else:
        logger.warning("Catalog search not configured; image messages will not be answered")

    return create_app(
        config,
        completion=completion,
        catalog_search=catalog_search,
        audit_logger=audit_logger,
    )


def create_app(
    config: AppConfig,
    *,
    sender: MessageSender | None = None,
    completion: TextCompletion | None = None,
    catalog_search: CatalogSearch | None = None,
    audit_logger: AuditLogger | None = None,
    rate_limiter: SenderRateLimiter | None = None,
) -> FastAPI:
    """Create the webhook FastAPI app."""
    dispatcher = ReplyDispatcher(
        page_access_token=config.page_access_token,
        sender=sender or MessengerSendClient(app_secret=config.app_secret),
        completion=completion,
        catalog_search=catalog_search,
        audit_logger=audit_logger,
        max_message_chars=config.max_message_chars,
    )
    webhook = MessengerWebhook(verify_token=config.verify_token)
    ingress = WebhookIngress(
        webhook=webhook,
        app_secret=config.app_secret,
        rate_limiter=rate_limiter or SenderRateLimiter(
            max_events=config.rate_limit_max_events,
            window_seconds=config.rate_limit_window_seconds,
        ),
        dispatcher=dispatcher,
        audit_logger=audit_logger,
        max_concurrent_dispatches=config.max_concurrent_dispatches,
    )
    missing = config.missing_secrets()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        if ingress.in_flight:
            logger.info("Waiting for %d reply task(s) to finish", ingress.in_flight)
        await ingress.drain()

    app = FastAPI(docs_url=None, redoc_url=None, openapi_url=None, lifespan=lifespan)
    app.state.ingress = ingress

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.api_route(
        config.webhook_path,
        methods=["GET", "HEAD", "POST", "PUT", "DELETE", "PATCH", "OPTIONS", "TRACE"],
    )
    async def webhook_endpoint(request: Request) -> Response:
        if missing:
            logger.error("Webhook called with missing secrets: %s", ", ".join(missing))
            return PlainTextResponse("Server misconfigured", status_code=500)

        if request.method == "GET":
            result = webhook.handle_verification(dict(request.query_params))
            return _to_response(result)

        if request.method == "POST":
            # Raw bytes: the signature covers the body exactly as sent.
            raw_body = await request.body()
            result = await ingress.handle_post(
                raw_body, request.headers.get(SIGNATURE_HEADER),
            )
            return _to_response(result)

        return PlainTextResponse(
            "Method Not Allowed",
            status_code=405,
            headers={"Allow": _ALLOWED_METHODS},
        )

    return app


def _to_response(result: WebhookResponse) -> Response:
    return PlainTextResponse(result.text, status_code=result.status_code)
