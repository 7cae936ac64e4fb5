"""structlog logging setup shared by the demo app and the CLI."""

import logging
import sys

import structlog

# Event keys whose values must never reach log output verbatim.
_SECRET_KEYS = frozenset({"nonce"})


def _rename_logger_to_module(
    logger: logging.Logger, method_name: str, event_dict: dict
) -> dict:
    """Rename 'logger' key to 'module' for structured log field consistency."""
    if "logger" in event_dict:
        event_dict["module"] = event_dict.pop("logger")
    return event_dict


def _redact_secrets(logger: logging.Logger, method_name: str, event_dict: dict) -> dict:
    """Mask nonce values; a logged nonce defeats its purpose."""
    for key in _SECRET_KEYS & event_dict.keys():
        event_dict[key] = "***"
    return event_dict


def _shared_processors() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        _rename_logger_to_module,
        _redact_secrets,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]


def setup_logging(log_level: str = "info", json_format: bool = True, stream=None) -> None:
    """Configure structlog for JSON or human-readable output.

    Logs go to stderr by default so the CLI can print headers on stdout.
    """
    if json_format:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)

    structlog.configure(
        processors=[
            *_shared_processors(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
