import json
import logging
import inspect
from typing import Any

import structlog

from dashboard_sql.config import get_settings
from dashboard_sql.utils.tracing import current_trace_id

# Module-level flag to prevent multiple configuration
_logging_configured = False

# Level colours for the console renderer
_LEVEL_COLOURS = {
    'DEBUG': '\033[36m',
    'INFO': '\033[32m',
    'WARNING': '\033[33m',
    'ERROR': '\033[31m',
    'CRITICAL': '\033[35m',
}
_RESET = '\033[0m'


def _add_module_info(logger: Any, method_name: str, event_dict: structlog.types.EventDict) -> structlog.types.EventDict:
    """
    Add a short 'module' field derived from the logger name.

    Project loggers ("dashboard_sql.repositories.query_generation") are
    shortened to their last two parts ("repositories.query_generation").
    """
    logger_name = event_dict.get('logger', 'unknown')

    if logger_name.startswith('dashboard_sql.'):
        module_parts = logger_name.split('.')
        event_dict['module'] = '.'.join(module_parts[-2:])
    else:
        event_dict['module'] = logger_name

    return event_dict


def _add_trace_id(logger: Any, method_name: str, event_dict: structlog.types.EventDict) -> structlog.types.EventDict:
    """Fill in trace_id from the request context when the call site did not pass one."""
    if event_dict.get('trace_id') is None:
        trace_id = current_trace_id()
        if trace_id is not None:
            event_dict['trace_id'] = trace_id
        else:
            event_dict.pop('trace_id', None)
    return event_dict


def _pretty_json_renderer(logger: Any, method_name: str, event_dict: structlog.types.EventDict) -> str:
    """Render the event as indented JSON."""
    return json.dumps(event_dict, indent=2, ensure_ascii=False, default=str)


def _console_renderer(logger: Any, method_name: str, event_dict: structlog.types.EventDict) -> str:
    """Render the event as one coloured line: time, level, module, event, then key=value pairs."""
    level = event_dict.get('level', '').upper()
    colour = _LEVEL_COLOURS.get(level, '')

    line = (
        f"{event_dict.get('timestamp', '')} {colour}[{level}]{_RESET} "
        f"{event_dict.get('module', '')}: {event_dict.get('event', '')}"
    )

    trace_id = event_dict.get('trace_id')
    if trace_id:
        line += f" (trace: {str(trace_id)[:8]})"

    skip_fields = {'timestamp', 'level', 'module', 'event', 'trace_id', 'logger'}
    extras = [f"{key}={value}" for key, value in event_dict.items() if key not in skip_fields]
    if extras:
        line += f" | {', '.join(extras)}"

    return line


def configure_logging() -> None:
    """Configure structured logging for the application."""

    global _logging_configured

    # ---- guard: run only once ----
    if _logging_configured:
        return
    _logging_configured = True

    settings = get_settings()

    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, settings.app.log_level.value),
        handlers=[logging.StreamHandler()]
    )

    renderer = _console_renderer if settings.app.log_format == "console" else _pretty_json_renderer

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            _add_module_info,
            _add_trace_id,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a configured logger instance.

    Args:
        name: Logger name, typically __name__ to get the module name

    Usage:
        logger = get_logger(__name__)
        logger.info("Query executed", row_count=14, trace_id="abc-123")
    """
    return structlog.get_logger(name)


def get_module_logger() -> structlog.stdlib.BoundLogger:
    """
    Get a logger named after the calling module.

    Falls back to 'unknown' when frame inspection is unavailable.
    """
    module_name = 'unknown'
    frame = None

    try:
        frame = inspect.currentframe()
        if frame is not None and frame.f_back is not None:
            module_name = frame.f_back.f_globals.get('__name__', 'unknown')
    except (AttributeError, RuntimeError):
        # Some embedded interpreters do not expose frames
        pass
    finally:
        # Break the frame reference cycle
        if frame is not None:
            del frame

    return get_logger(module_name)
