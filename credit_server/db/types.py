"""Column types shared by the ORM models."""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import BigInteger
from sqlalchemy.types import TypeDecorator

from credit_server.core.amounts import from_micro, to_micro


class MicroCredits(TypeDecorator):
    """Decimal amount stored as an integer count of millionths.

    Guards such as ``current_credit >= :amount`` and the ``SUM`` aggregates run in
    integers on every dialect, sqlite included.
    """

    impl = BigInteger
    cache_ok = True

    def process_bind_param(self, value: Any, dialect) -> Optional[int]:
        if value is None:
            return None
        return to_micro(value)

    def process_result_value(self, value: Any, dialect) -> Optional[Decimal]:
        if value is None:
            return None
        return from_micro(value)

    def coerce_compared_value(self, op, value):
        # 与金额列比较或运算的字面量同样按百万分之一换算
        return self
