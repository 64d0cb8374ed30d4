#!/usr/bin/env python3
"""
Main / entry point for the Huawei ONT exporter.

"""
import asyncio
import time
from os import getenv

import structlog
from prometheus_client import start_http_server

from huawei_ont.metrics import PrometheusSink
from huawei_ont.scrape import scrape_cycle
from util.const import DEFAULT_REQUEST_TIMEOUT_SECONDS, LogFormat, LogLevel

# cfg-file/arg-arse/clip is overkill for the few things that need to be configured.
# k8s makes it trivial to define env-vars so we'll just use that.
##
ONT_URL = getenv("ONT_URL", "http://192.168.100.1")

# Most ISPs ship these with `root` or `telecomadmin`; the front-line user is fine for read-only pages
ONT_USER = getenv("ONT_USER", "root")
# Printed on a sticker on the ONT; impossible to guess so require user provides
ONT_PASS = getenv("ONT_PASS", None)

# default prometheus_client implementation does not support setting the path, only the port.
METRICS_PORT = int(getenv("METRICS_PORT", "8000"))
SCRAPE_INTERVAL = int(getenv("SCRAPE_INTERVAL", "30"))
REQUEST_TIMEOUT_SECONDS = float(
    getenv("REQUEST_TIMEOUT_SECONDS", str(DEFAULT_REQUEST_TIMEOUT_SECONDS))
)
# Self-signed on every ONT seen so far
ONT_VERIFY_TLS = getenv("ONT_VERIFY_TLS", "false").lower() in ("1", "true", "yes")


if getenv("LOG_LEVEL") not in LogLevel.__members__ or getenv("LOG_LEVEL") is None:
    print(f"Defaulting to {LogLevel.INFO} log level")
    log_level = LogLevel.INFO
else:
    log_level = LogLevel[getenv("LOG_LEVEL")]  # type: ignore
    print(f"Using log level {log_level.value}")

if getenv("LOG_FORMAT", LogFormat.CONSOLE.value).lower() == LogFormat.JSON.value:
    _renderer = structlog.processors.JSONRenderer()
else:
    _renderer = structlog.dev.ConsoleRenderer()

structlog.configure(
    wrapper_class=structlog.make_filtering_bound_logger(log_level.value),
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        _renderer,
    ],
)

log = structlog.get_logger(__name__)


async def main():
    """Main entry point."""
    log.info("Starting up", target=ONT_URL, interval=SCRAPE_INTERVAL)
    # Check that user set auth
    if ONT_USER is None or ONT_PASS is None:
        log.error("Missing ONT_USER or ONT_PASS")
        return

    sink = PrometheusSink()

    # In testing, server responds to requests on / and /metrics so there's no real
    #   need to allow customizing the path, I think.
    server, _ = start_http_server(port=METRICS_PORT, registry=sink.registry)
    log.info("Metrics server started", server=server.server_address)

    while True:
        # Each cycle is awaited in full (logout included) before the next one can start
        started = time.monotonic()
        try:
            await scrape_cycle(
                ONT_URL,
                ONT_USER,
                ONT_PASS,
                sink,
                timeout=REQUEST_TIMEOUT_SECONDS,
                verify_tls=ONT_VERIFY_TLS,
            )
        # pylint: disable=broad-exception-caught
        except Exception as e:
            _e = "Unforeseen exception. Treating as non-fatal."
            log.error(_e, error=e)
            sink.record_scrape(time.monotonic() - started, e)

        _sleep = max(0.0, SCRAPE_INTERVAL - (time.monotonic() - started))
        log.debug(f"Sleeping {_sleep:.1f} seconds before next scrape")
        await asyncio.sleep(_sleep)


def run():
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
