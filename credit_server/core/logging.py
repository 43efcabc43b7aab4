"""Logging setup applied once when the application starts."""

from __future__ import annotations

import logging

from credit_server.core.config import Settings

_configured = False


def configure_logging(settings: Settings) -> None:
    global _configured
    if _configured:
        return
    level = logging.DEBUG if settings.debug else settings.logging.level.upper()
    logging.basicConfig(level=level, format=settings.logging.format)
    # 数据库 echo 由 database.echo 控制，避免重复输出
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    _configured = True


__all__ = ["configure_logging"]
