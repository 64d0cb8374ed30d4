import logging
from enum import Enum

# The ONT web UI only ever sees browsers; easy enough to pretend to be one
REQUEST_HEADERS = {
    "User-Agent": "Mozilla/5.0 (X11; Linux x86_64; rv:123.4) Gecko/20100101 Firefox/123.4",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
    "Accept-Encoding": "gzip, deflate",
    "Connection": "keep-alive",
    "Pragma": "no-cache",
    "Cache-Control": "no-cache",
}

# Every request is individually bounded by this unless overridden via env-var
DEFAULT_REQUEST_TIMEOUT_SECONDS = 10

# Leading byte-order-mark some firmware prepends to bare-text responses
BOM = "\ufeff"


class LogLevel(Enum):
    """Simple enum of supported log levels for easy validation"""

    DEBUG = logging.DEBUG
    INFO = logging.INFO
    WARNING = logging.WARNING
    ERROR = logging.ERROR
    CRITICAL = logging.CRITICAL


class LogFormat(Enum):
    """How structlog should render events"""

    CONSOLE = "console"
    JSON = "json"
