"""Entrypoint: python -m support_relay"""
from __future__ import annotations

import logging

import uvicorn

from support_relay.api.middleware.correlation_id import CorrelationIdFilter
from support_relay.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(correlation_id)s] %(name)s: %(message)s"


def configure_logging(level: str) -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
    for handler in logging.getLogger().handlers:
        handler.addFilter(CorrelationIdFilter())


def main() -> None:
    configure_logging(settings.LOG_LEVEL)
    uvicorn.run(
        "support_relay.app:create_app",
        factory=True,
        host="0.0.0.0",
        port=8000,
        log_level=settings.LOG_LEVEL.lower(),
        log_config=None,
    )


if __name__ == "__main__":
    main()
