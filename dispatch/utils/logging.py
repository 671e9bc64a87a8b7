"""Structured logging configuration."""

import logging
import sys
from typing import Any

import structlog
from pythonjsonlogger import jsonlogger

from dispatch.config import Settings, get_settings

SERVICE_NAME = "courier-dispatch"


def _add_service(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def _build_handler(log_format: str) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    if log_format == "json":
        handler.setFormatter(jsonlogger.JsonFormatter(
            fmt="%(timestamp)s %(level)s %(name)s %(message)s",
            rename_fields={"levelname": "level", "asctime": "timestamp"},
        ))
    else:
        handler.setFormatter(logging.Formatter(
            fmt="%(asctime)s %(levelname)-7s [%(name)s] %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        ))
    return handler


def setup_logging(settings: Settings | None = None) -> None:
    """Configure stdlib and structlog output for the dispatch process."""
    settings = settings or get_settings()
    log_level = getattr(logging, settings.log_level)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()
    root_logger.addHandler(_build_handler(settings.log_format))

    renderer = (
        structlog.processors.JSONRenderer()
        if settings.log_format == "json"
        else structlog.dev.ConsoleRenderer(colors=False)
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            _add_service,
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


class DispatchLogger:
    """Logger for order transitions, deliveries and lock outcomes."""

    def __init__(self, component: str):
        self.component = component
        self.logger = get_logger(component)

    def log_transition(
        self,
        order_id: int,
        from_status: str,
        to_status: str,
        **kwargs: Any,
    ) -> None:
        """Log an order status change."""
        self.logger.info(
            "order_transition",
            component=self.component,
            order_id=order_id,
            from_status=from_status,
            to_status=to_status,
            **kwargs,
        )

    def log_rejected(
        self,
        action: str,
        reason: str,
        order_id: int | None = None,
        **kwargs: Any,
    ) -> None:
        """Log an action that was ignored as a no-op."""
        self.logger.info(
            "action_rejected",
            component=self.component,
            action=action,
            order_id=order_id,
            reason=reason,
            **kwargs,
        )

    def log_delivery_failure(
        self,
        channel: str,
        chat_id: int,
        error: str,
        **kwargs: Any,
    ) -> None:
        """Log an outbound message that could not be delivered."""
        self.logger.warning(
            "notification_failed",
            component=self.component,
            channel=channel,
            chat_id=chat_id,
            error=error,
            **kwargs,
        )
