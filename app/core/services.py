"""Shared write helpers used across services."""

from typing import Any, Dict, Optional, Type
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession


async def set_exclusive_flag(
    db: AsyncSession,
    model: Type[Any],
    flag: str,
    target_id: UUID,
    scope: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Make `target_id` the only row of `model` within `scope` with `flag` = true.
    Clears the flag on every other row in scope, then sets it on the target.
    Runs inside the caller's transaction; caller commits.

    Examples:
        set_exclusive_flag(db, Semester, "is_active", semester.id)
        set_exclusive_flag(db, Timetable, "is_published", tt.id, {"semester_id": tt.semester_id})
    """
    column = getattr(model, flag)
    conditions = [getattr(model, key) == value for key, value in (scope or {}).items()]

    await db.execute(
        update(model)
        .where(*conditions, model.id != target_id, column.is_(True))
        .values({flag: False})
        .execution_options(synchronize_session="fetch")
    )
    await db.execute(
        update(model)
        .where(model.id == target_id)
        .values({flag: True})
        .execution_options(synchronize_session="fetch")
    )
