from logging import Logger, basicConfig, getLevelNamesMapping

from structlog import (
    configure_once,
    get_logger as structlog_get_logger,
    make_filtering_bound_logger,
)
from structlog.contextvars import merge_contextvars
from structlog.dev import ConsoleRenderer
from structlog.processors import (
    JSONRenderer,
    StackInfoRenderer,
    TimeStamper,
    UnicodeDecoder,
    add_log_level,
    format_exc_info,
)
from structlog.stdlib import PositionalArgumentsFormatter
from structlog.typing import Processor

from reminder_bot.helpers.config import CONFIG
from reminder_bot.helpers.config_models.monitoring import LoggingFormatEnum

_config = CONFIG.monitoring.logging

# Dependencies log through the standard library
basicConfig(level=_config.sys_level.value)

# Last processors depend on the output, exceptions are pre-rendered for JSON only
_renderers: list[Processor] = (
    [format_exc_info, JSONRenderer(ensure_ascii=False)]
    if _config.format == LoggingFormatEnum.JSON
    else [ConsoleRenderer()]
)

configure_once(
    cache_logger_on_first_use=True,
    context_class=dict,
    wrapper_class=make_filtering_bound_logger(
        getLevelNamesMapping()[_config.app_level.value]
    ),
    processors=[
        # Reminder and owner ids bound by the request handlers
        merge_contextvars,
        add_log_level,
        # Enable %s-style formatting
        PositionalArgumentsFormatter(),
        TimeStamper(fmt="iso", utc=True),
        StackInfoRenderer(),
        UnicodeDecoder(),
        *_renderers,
    ],
)

# Framework does not exactly expose Logger, but that's easier to work with
logger: Logger = structlog_get_logger("line-todo-reminder")
