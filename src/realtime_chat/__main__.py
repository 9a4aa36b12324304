"""Entrypoint: python -m realtime_chat"""
from __future__ import annotations

import logging

import uvicorn

from realtime_chat.api.middleware.correlation_id import CorrelationIdFilter


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] [%(request_id)s] %(message)s",
    )
    for handler in logging.getLogger().handlers:
        handler.addFilter(CorrelationIdFilter())

    uvicorn.run(
        "realtime_chat.app:create_app",
        factory=True,
        host="0.0.0.0",
        port=8000,
        log_level="info",
    )


if __name__ == "__main__":
    main()
