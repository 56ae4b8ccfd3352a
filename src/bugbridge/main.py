"""FastAPI application entry point for the GitHub bug bridge.

Routes:
- POST /github/pull_request: link opened pull requests to bugs
- POST /github/push_comment: comment on and resolve bugs from pushes
- GET /health, /ready: liveness and readiness probes
- GET /metrics: Prometheus metrics
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response

from src.bugbridge.bugs.gateway import BugGateway
from src.bugbridge.bugs.memory import InMemoryBugGateway
from src.bugbridge.bugs.postgres import PostgresBugGateway
from src.bugbridge.config import BridgeSettings, get_settings
from src.bugbridge.errors import BridgeError
from src.bugbridge.handlers.pull_request import PullRequestHandler
from src.bugbridge.handlers.push import PushHandler
from src.bugbridge.metrics import BridgeMetrics, get_metrics
from src.bugbridge.webhook.models import WebhookEvent

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

PROMETHEUS_CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"


def _redact_secret(value: Optional[str], visible_chars: int = 4) -> str:
    """Redact a secret value, showing only the first few characters.

    Args:
        value: The secret value to redact.
        visible_chars: Number of characters to show at the start.

    Returns:
        Redacted string with asterisks replacing hidden characters.
    """
    if not value:
        return "<unset>"
    if len(value) <= visible_chars:
        return "*" * len(value)
    return value[:visible_chars] + "*" * (len(value) - visible_chars)


def _log_configuration(settings: BridgeSettings) -> None:
    """Log configuration values with secrets redacted."""
    logger.info("Bridge configuration:")
    logger.info(f"  PR Linking Enabled: {settings.github_pr_linking_enabled}")
    logger.info(f"  Push Comment Enabled: {settings.github_push_comment_enabled}")
    logger.info(
        f"  Signature Secret: {_redact_secret(settings.github_pr_signature_secret)}"
    )
    logger.info(f"  GitHub Base URL: {settings.github_base_url}")
    logger.info(f"  Automation Login: {settings.automation_login}")
    logger.info(f"  Use Markdown: {settings.use_markdown}")
    logger.info(f"  Release Branch Pattern: {settings.release_branch_pattern}")
    logger.info(f"  Tracking Field Template: {settings.tracking_field_template}")
    logger.info(f"  Database URL: {_redact_secret(settings.database_url)}")


async def _create_gateway(settings: BridgeSettings) -> BugGateway:
    """Create the gateway named by the settings."""
    if settings.database_url:
        gateway = PostgresBugGateway(settings.database_url)
        await gateway.connect()
        return gateway

    logger.warning("No database configured; using the in-memory bug store")
    return InMemoryBugGateway()


async def _read_event(request: Request) -> WebhookEvent:
    return WebhookEvent(
        event_name=request.headers.get("X-GitHub-Event"),
        raw_body=await request.body(),
        signature_header=request.headers.get("X-Hub-Signature-256"),
        delivery_id=request.headers.get("X-GitHub-Delivery"),
    )


def create_app(
    settings: Optional[BridgeSettings] = None,
    gateway: Optional[BugGateway] = None,
    metrics: Optional[BridgeMetrics] = None,
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        settings: Bridge settings; loaded from the environment at startup
            when omitted.
        gateway: Bug tracker gateway; created from the settings at startup
            when omitted, and then also closed at shutdown.
        metrics: Prometheus metrics; the shared default-registry instance
            from get_metrics() when omitted, so several apps can be built
            in one process.
    """
    metrics = metrics or get_metrics()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Bug bridge starting up...")

        cfg = settings or get_settings()
        _log_configuration(cfg)

        owns_gateway = gateway is None
        bug_gateway = gateway or await _create_gateway(cfg)

        app.state.settings = cfg
        app.state.gateway = bug_gateway
        app.state.pull_request_handler = PullRequestHandler(cfg, bug_gateway, metrics)
        app.state.push_handler = PushHandler(cfg, bug_gateway, metrics)

        logger.info("Bug bridge started successfully")

        yield

        logger.info("Bug bridge shutting down...")
        if owns_gateway:
            await bug_gateway.close()
        logger.info("Bug bridge shutdown complete")

    app = FastAPI(
        title="GitHub Bug Bridge",
        description="Links GitHub pull requests and pushes to bug tracker records",
        version="1.0.0",
        lifespan=lifespan,
    )

    @app.exception_handler(BridgeError)
    async def bridge_error_handler(request: Request, exc: BridgeError) -> JSONResponse:
        return JSONResponse(status_code=exc.http_status, content=exc.to_response())

    @app.get("/health")
    async def health():
        """Liveness probe endpoint."""
        return {"status": "healthy"}

    @app.get("/ready")
    async def ready(request: Request):
        """Readiness probe endpoint.

        Returns 503 when the bug tracker datastore is unreachable.
        """
        database_ok = await request.app.state.gateway.ping()
        body = {
            "status": "ready" if database_ok else "not_ready",
            "dependencies": {
                "database": "healthy" if database_ok else "unavailable",
            },
        }
        return JSONResponse(status_code=200 if database_ok else 503, content=body)

    @app.get("/metrics")
    async def prometheus_metrics():
        """Prometheus metrics endpoint."""
        return Response(content=metrics.generate(), media_type=PROMETHEUS_CONTENT_TYPE)

    @app.post("/github/pull_request")
    async def github_pull_request(request: Request):
        """Link a newly opened pull request to the bug named in its title."""
        event = await _read_event(request)
        return await request.app.state.pull_request_handler.handle(event)

    @app.post("/github/push_comment")
    async def github_push_comment(request: Request):
        """Comment on the bugs referenced by pushed commits."""
        event = await _read_event(request)
        return await request.app.state.push_handler.handle(event)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    dev_settings = get_settings()
    uvicorn.run(
        "src.bugbridge.main:app",
        host=dev_settings.host,
        port=dev_settings.port,
    )
