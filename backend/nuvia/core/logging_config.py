"""
Loguru setup for the collaboration service.

Every record carries a ``component`` (the short module name) and a rendered
``context`` built from the session fields bound with ``logger.bind``, so a
line such as ``coordinator - joined project_id=p1 connection_id=abc`` can be
grepped per project or per connection.
"""
import os
import sys
import time
import uuid
from typing import Optional, Iterable
from loguru import logger

from nuvia.core.config import Settings, get_settings

CONTEXT_FIELDS = ("project_id", "connection_id", "request_id")


def add_context(record):
    """Patcher filling the ``component`` and ``context`` extras used by the formats"""
    extra = record["extra"]
    extra.setdefault("component", record["name"].rsplit(".", 1)[-1])
    extra["context"] = " ".join(
        f"{field}={extra[field]}" for field in CONTEXT_FIELDS if extra.get(field) is not None
    )


def configure_logging(settings: Optional[Settings] = None):
    """
    Replace loguru's default sink with the service sinks.

    Console always; a rotating file when ``log_file`` is set; JSON lines on
    stdout in production; a daily error file under ``error_log_dir`` when set.
    """
    settings = settings or get_settings()
    development = settings.environment == "development"

    logger.remove()
    logger.configure(patcher=add_context)

    logger.add(
        sys.stdout,
        format=settings.log_format,
        level=settings.log_level,
        colorize=development,
        backtrace=True,
        diagnose=development
    )

    if settings.log_file:
        logger.add(
            settings.log_file,
            format=settings.log_format,
            level=settings.log_level,
            rotation=settings.log_rotation,
            retention=settings.log_retention,
            compression="gz",
            diagnose=False
        )

    if settings.environment == "production":
        logger.add(sys.stdout, level=settings.log_level, serialize=True, diagnose=False)

    if settings.error_log_dir:
        os.makedirs(settings.error_log_dir, exist_ok=True)
        logger.add(
            os.path.join(settings.error_log_dir, "errors_{time:YYYYMMDD}.log"),
            format=settings.log_format,
            level="ERROR",
            rotation="00:00",
            retention="30 days",
            compression="gz",
            backtrace=True,
            diagnose=development
        )

    logger.info(f"Logging configured for {settings.environment} environment")


class RequestLoggingMiddleware:
    """
    ASGI middleware that tags each HTTP request with an id and logs its outcome.

    The id is stored on ``request.state.request_id`` (read by the error
    handlers) and echoed in the ``x-request-id`` response header. Requests to
    ``quiet_paths`` such as health checks are logged at DEBUG.
    """

    def __init__(self, app, quiet_paths: Iterable[str] = ("/health",)):
        self.app = app
        self.quiet_paths = tuple(quiet_paths)

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request_id = uuid.uuid4().hex[:12]
        scope.setdefault("state", {})["request_id"] = request_id
        started = time.perf_counter()
        path = scope["path"]
        quiet = path.startswith(self.quiet_paths)

        async def send_with_request_id(message):
            if message["type"] == "http.response.start":
                message["headers"] = list(message.get("headers", [])) + [(b"x-request-id", request_id.encode())]

                status_code = message["status"]
                elapsed = time.perf_counter() - started
                if status_code >= 500:
                    level = "ERROR"
                elif status_code >= 400:
                    level = "WARNING"
                else:
                    level = "DEBUG" if quiet else "INFO"
                logger.bind(request_id=request_id, component="http").log(
                    level, f"{scope['method']} {path} -> {status_code} in {elapsed * 1000:.1f}ms"
                )

            await send(message)

        await self.app(scope, receive, send_with_request_id)


def get_logger(name: str = None):
    """Logger whose records are labelled with the last segment of ``name``"""
    if name:
        return logger.bind(component=name.rsplit(".", 1)[-1])
    return logger
