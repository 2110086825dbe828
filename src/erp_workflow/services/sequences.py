"""Sequential human-readable identifiers (invoice numbers, matricules)."""

from __future__ import annotations

from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession


async def next_sequence(session: AsyncSession, column: Any, prefix: str) -> int:
    """Next counter after the highest ``<prefix><n>`` value stored in ``column``.

    Values whose suffix is not an integer are ignored.
    """
    result = await session.execute(select(column).where(column.like(f"{prefix}%")))
    highest = 0
    for (value,) in result.all():
        suffix = value[len(prefix):]
        if suffix.isdigit():
            highest = max(highest, int(suffix))
    return highest + 1


async def next_code(session: AsyncSession, column: Any, prefix: str, width: int) -> str:
    """``prefix`` followed by the next counter, zero-padded to ``width``."""
    return f"{prefix}{await next_sequence(session, column, prefix):0{width}d}"
