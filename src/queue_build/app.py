"""HTTP surface for queue-build.

POST / with an ``x-api-key`` header and a JSON body ``{"owner": ..., "repo": ...}``
schedules a debounced dispatch of the repository's CI workflow.
"""

from __future__ import annotations

import hmac
import json
import logging
import re
import sys
import time
from collections.abc import Callable

from fastapi import FastAPI
from starlette.requests import Request
from starlette.responses import JSONResponse, PlainTextResponse, Response

from . import __version__
from .audit import build_event, new_correlation_id
from .errors import SafeError, UserInputError, internal_error, safe_error_to_result
from .runtime import Runtime, initialize_runtime_from_env

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stderr)],
)
logger = logging.getLogger(__name__)

API_KEY_HEADER = "x-api-key"
FORBIDDEN_BODY = "Forbidden"
OPERATION = "queue_build"

_NAME_RE = re.compile(r"[A-Za-z0-9_.-]+")


def api_key_matches(provided: str | None, expected: str) -> bool:
    if not provided or not expected:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


def _require_name(body: dict, key: str) -> str:
    value = body.get(key)
    if not isinstance(value, str) or not value:
        raise UserInputError(message=f"Field '{key}' is required")
    if value in {".", ".."} or not _NAME_RE.fullmatch(value):
        raise UserInputError(message=f"Field '{key}' is not a valid GitHub name")
    return value


async def read_target(request: Request) -> tuple[str, str]:
    """Extract owner/repo from the JSON request body."""
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise UserInputError(message="Request body must be JSON") from exc
    if not isinstance(body, dict):
        raise UserInputError(message="Request body must be a JSON object")
    return _require_name(body, "owner"), _require_name(body, "repo")


async def handle_queue_build(runtime_provider: Callable[[], Runtime], request: Request) -> Response:
    """Validate the caller, schedule the dispatch, and report the terminal outcome."""
    correlation_id = new_correlation_id()
    target_repo = "<unknown>"
    runtime: Runtime | None = None
    start: float | None = None

    try:
        runtime = runtime_provider()
        start = runtime.audit.measure_start()

        if not api_key_matches(request.headers.get(API_KEY_HEADER), runtime.config.api_key):
            runtime.audit.write_event(
                build_event(
                    correlation_id=correlation_id,
                    operation=OPERATION,
                    target_repo=target_repo,
                    outcome="denied",
                    reason="Invalid API key",
                    duration_ms=runtime.audit.measure_duration_ms(start),
                )
            )
            return PlainTextResponse(FORBIDDEN_BODY, status_code=403)

        owner, repo = await read_target(request)
        target_repo = f"{owner}/{repo}"
        logger.info("Build requested for %s", target_repo)

        outcome = await runtime.service.queue_build(owner, repo)

        runtime.audit.write_event(
            build_event(
                correlation_id=correlation_id,
                operation=OPERATION,
                target_repo=target_repo,
                outcome="succeeded",
                cache="hit" if outcome.cache_hit else "miss",
                duration_ms=runtime.audit.measure_duration_ms(start),
            )
        )
        return PlainTextResponse("success")

    except SafeError as err:
        logger.warning("Build request for %s failed: %s", target_repo, err)
        if runtime is not None and start is not None:
            runtime.audit.write_event(
                build_event(
                    correlation_id=correlation_id,
                    operation=OPERATION,
                    target_repo=target_repo,
                    outcome="denied" if err.code == "UserInput" else "failed",
                    reason=err.message,
                    duration_ms=runtime.audit.measure_duration_ms(start),
                )
            )
        result = safe_error_to_result(err)
        result["correlation_id"] = correlation_id
        return JSONResponse(result, status_code=err.http_status)
    except Exception:  # pylint: disable=broad-exception-caught
        logger.exception("Build request for %s failed unexpectedly", target_repo)
        if runtime is not None and start is not None:
            runtime.audit.write_event(
                build_event(
                    correlation_id=correlation_id,
                    operation=OPERATION,
                    target_repo=target_repo,
                    outcome="failed",
                    reason="Internal error",
                    duration_ms=runtime.audit.measure_duration_ms(start),
                )
            )
        result = internal_error("Internal error")
        result["correlation_id"] = correlation_id
        return JSONResponse(result, status_code=500)


def create_app(runtime_provider: Callable[[], Runtime] = initialize_runtime_from_env) -> FastAPI:
    """Build the FastAPI application around a runtime provider."""
    app = FastAPI(title="queue-build", version=__version__)

    @app.middleware("http")
    async def request_logging_middleware(request: Request, call_next):
        started_at = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started_at) * 1000.0
        logger.info(
            "http request method=%s path=%s status=%s duration_ms=%.2f",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
        )
        return response

    @app.get("/healthz")
    async def healthz() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/")
    async def queue_build(request: Request) -> Response:
        return await handle_queue_build(runtime_provider, request)

    return app


app = create_app()
