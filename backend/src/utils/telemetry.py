import logging
from datetime import datetime, timezone
from typing import Any


LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

logger = logging.getLogger("telemetry")


def configure_logging(level: int | str = logging.INFO) -> None:
    """Configure default logging if no handlers are present."""
    root = logging.getLogger()
    if root.handlers:
        return
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[logging.StreamHandler()],
    )


def serialize_error(error: BaseException) -> dict[str, Any]:
    return {"name": type(error).__name__, "message": str(error)}


def report_error(context: str, error: BaseException, **meta: Any) -> dict[str, Any]:
    """
    Best-effort sink for failures that must not reach the user:
    logs the operation, the exception and its ids with a UTC timestamp.
    """
    payload = {
        "context": context,
        **serialize_error(error),
        "meta": meta,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    logger.error("error %s", payload, exc_info=error)
    return payload
