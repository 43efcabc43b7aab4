"""Key/value cache client helpers."""

from .redis_client import build_redis_client

__all__ = ["build_redis_client"]
