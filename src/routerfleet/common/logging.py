"""Logging setup for routerfleet runs."""

from __future__ import annotations

import logging

# httpx logs every request at INFO; the RouterOS transport already logs each
# request at DEBUG with its duration.
_HTTP_LOGGERS = ("httpx", "httpcore")


def configure_logging(
    *,
    level: int | str = logging.INFO,
    force: bool = False,
    quiet_http: bool = True,
) -> None:
    """Configure the root logger for a reconciliation run.

    Operation events are emitted at INFO (failures at WARNING) by the default
    event sink, per-request transport lines at DEBUG. Pass ``force=True`` to
    reconfigure during tests, and ``quiet_http=False`` to keep the HTTP
    library's own request logging.
    """

    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%H:%M:%S",
        force=force,
    )
    if quiet_http:
        for name in _HTTP_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
