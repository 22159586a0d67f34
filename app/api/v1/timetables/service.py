"""
Timetables and their slots.
Slot writes lock the parent timetable row, so two concurrent inserts into the same
timetable are checked for overlap one after the other. Publication is exclusive per
semester and is switched in a single transaction.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.auth.rbac import ensure_role
from app.auth.schemas import CurrentUser
from app.core.enums import TIMETABLE_EDITOR_ROLES, NotificationType, UserRole
from app.core.exceptions import ConflictError, ConsistencyError, NotFoundError, ValidationError
from app.core.logging import get_logger
from app.core.models import Course, LecturerCourse, Semester, Timetable, TimetableSlot
from app.core.services import set_exclusive_flag

from app.api.v1.course_uploads.service import lookup_approved_course_uploads
from app.api.v1.notifications.service import OutgoingNotification, deliver
from app.api.v1.semesters.service import get_active_semester

from .conflicts import Interval, find_conflicts
from .schemas import (
    TimetableCreate,
    TimetableResponse,
    TimetableSlotCreate,
    TimetableSlotResponse,
    TimetableSlotUpdate,
    UserTimetableResponse,
)

logger = get_logger(__name__)

PUBLISHER_ROLES = (UserRole.REGISTRAR.value,)


def _slot_to_response(s: TimetableSlot) -> TimetableSlotResponse:
    return TimetableSlotResponse(
        id=s.id,
        timetable_id=s.timetable_id,
        course_id=s.course_id,
        lecturer_course_id=s.lecturer_course_id,
        day_of_week=s.day_of_week,
        start_time=s.start_time,
        end_time=s.end_time,
        room_number=s.room_number,
        created_at=s.created_at,
    )


def _sorted_slots(slots: List[TimetableSlot]) -> List[TimetableSlot]:
    return sorted(slots, key=lambda s: (s.day_of_week, s.start_time))


def _to_response(t: Timetable, include_slots: bool = True) -> TimetableResponse:
    return TimetableResponse(
        id=t.id,
        semester_id=t.semester_id,
        name=t.name,
        is_published=t.is_published,
        created_at=t.created_at,
        updated_at=t.updated_at,
        slots=[_slot_to_response(s) for s in _sorted_slots(t.slots)] if include_slots else [],
    )


def _conflict_details(slots: List[TimetableSlot]) -> List[Dict[str, Any]]:
    return [_slot_to_response(s).model_dump(mode="json") for s in slots]


async def _load_timetable(db: AsyncSession, timetable_id: UUID) -> Optional[Timetable]:
    result = await db.execute(
        select(Timetable)
        .where(Timetable.id == timetable_id)
        .options(selectinload(Timetable.slots))
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _lock_timetable(db: AsyncSession, timetable_id: UUID) -> Timetable:
    result = await db.execute(
        select(Timetable)
        .where(Timetable.id == timetable_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    tt = result.scalar_one_or_none()
    if not tt:
        raise NotFoundError("Timetable not found")
    return tt


async def _same_day_slots(db: AsyncSession, timetable_id: UUID, day_of_week: int) -> List[TimetableSlot]:
    result = await db.execute(
        select(TimetableSlot)
        .where(TimetableSlot.timetable_id == timetable_id, TimetableSlot.day_of_week == day_of_week)
        .order_by(TimetableSlot.start_time)
    )
    return list(result.scalars().all())


async def _check_slot_refs(
    db: AsyncSession,
    tt: Timetable,
    course_id: UUID,
    lecturer_course_id: Optional[UUID],
) -> None:
    if not await db.get(Course, course_id):
        raise NotFoundError("Course not found")
    if lecturer_course_id is None:
        return
    lc = await db.get(LecturerCourse, lecturer_course_id)
    if not lc:
        raise NotFoundError("Lecturer assignment not found")
    if lc.course_id != course_id or lc.semester_id != tt.semester_id:
        raise ValidationError("Lecturer assignment does not match this course and semester")


# ----- Timetables -----

async def create_timetable(
    db: AsyncSession,
    actor: CurrentUser,
    payload: TimetableCreate,
) -> TimetableResponse:
    ensure_role(actor, TIMETABLE_EDITOR_ROLES, "Only staff or the registrar can create timetables")
    if not await db.get(Semester, payload.semester_id):
        raise NotFoundError("Semester not found")
    tt = Timetable(semester_id=payload.semester_id, name=payload.name.strip(), is_published=False)
    db.add(tt)
    await db.commit()
    logger.info("timetable_created", timetable_id=str(tt.id), semester_id=str(tt.semester_id))
    return _to_response(await _load_timetable(db, tt.id))


async def list_timetables(
    db: AsyncSession,
    semester_id: Optional[UUID] = None,
) -> List[TimetableResponse]:
    stmt = select(Timetable)
    if semester_id is not None:
        stmt = stmt.where(Timetable.semester_id == semester_id)
    stmt = stmt.order_by(Timetable.created_at)
    result = await db.execute(stmt)
    return [_to_response(t, include_slots=False) for t in result.scalars().all()]


async def get_timetable(db: AsyncSession, timetable_id: UUID) -> TimetableResponse:
    tt = await _load_timetable(db, timetable_id)
    if not tt:
        raise NotFoundError("Timetable not found")
    return _to_response(tt)


async def delete_timetable(db: AsyncSession, actor: CurrentUser, timetable_id: UUID) -> None:
    ensure_role(actor, PUBLISHER_ROLES, "Only the registrar can delete timetables")
    tt = await db.get(Timetable, timetable_id)
    if not tt:
        raise NotFoundError("Timetable not found")
    await db.delete(tt)
    await db.commit()
    logger.info("timetable_deleted", timetable_id=str(timetable_id))


# ----- Slots -----

async def add_slot(
    db: AsyncSession,
    actor: CurrentUser,
    timetable_id: UUID,
    payload: TimetableSlotCreate,
) -> TimetableSlotResponse:
    """
    Insert a slot unless it overlaps any slot of the same timetable on the same day.
    The ConflictError carries every overlapping slot, whatever its room.
    """
    ensure_role(actor, TIMETABLE_EDITOR_ROLES, "Only staff or the registrar can edit timetables")
    tt = await _lock_timetable(db, timetable_id)
    interval = Interval.parse(payload.day_of_week, payload.start_time, payload.end_time)
    await _check_slot_refs(db, tt, payload.course_id, payload.lecturer_course_id)

    conflicts = find_conflicts(interval, await _same_day_slots(db, tt.id, interval.day_of_week))
    if conflicts:
        raise ConflictError(
            f"Slot overlaps {len(conflicts)} existing slot(s)",
            details=_conflict_details(conflicts),
        )

    slot = TimetableSlot(
        timetable_id=tt.id,
        course_id=payload.course_id,
        lecturer_course_id=payload.lecturer_course_id,
        day_of_week=interval.day_of_week,
        start_time=interval.start,
        end_time=interval.end,
        room_number=payload.room_number.strip(),
    )
    db.add(slot)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("Timetable slot creation failed")
    logger.info(
        "timetable_slot_added",
        timetable_id=str(tt.id),
        slot_id=str(slot.id),
        day_of_week=slot.day_of_week,
    )
    return _slot_to_response(slot)


def _pick(data: Dict[str, Any], key: str, current: Any) -> Any:
    value = data.get(key)
    return current if value is None else value


async def _get_slot(db: AsyncSession, timetable_id: UUID, slot_id: UUID) -> TimetableSlot:
    slot = await db.get(TimetableSlot, slot_id)
    if not slot or slot.timetable_id != timetable_id:
        raise NotFoundError("Timetable slot not found")
    return slot


async def update_slot(
    db: AsyncSession,
    actor: CurrentUser,
    timetable_id: UUID,
    slot_id: UUID,
    payload: TimetableSlotUpdate,
) -> TimetableSlotResponse:
    """Same overlap rule as add_slot, ignoring the slot being edited."""
    ensure_role(actor, TIMETABLE_EDITOR_ROLES, "Only staff or the registrar can edit timetables")
    tt = await _lock_timetable(db, timetable_id)
    slot = await _get_slot(db, timetable_id, slot_id)

    data = payload.model_dump(exclude_unset=True)
    interval = Interval.parse(
        _pick(data, "day_of_week", slot.day_of_week),
        _pick(data, "start_time", slot.start_time),
        _pick(data, "end_time", slot.end_time),
    )
    course_id = _pick(data, "course_id", slot.course_id)
    lecturer_course_id = data["lecturer_course_id"] if "lecturer_course_id" in data else slot.lecturer_course_id
    await _check_slot_refs(db, tt, course_id, lecturer_course_id)

    conflicts = find_conflicts(
        interval,
        await _same_day_slots(db, tt.id, interval.day_of_week),
        exclude_id=slot.id,
    )
    if conflicts:
        raise ConflictError(
            f"Slot overlaps {len(conflicts)} existing slot(s)",
            details=_conflict_details(conflicts),
        )

    slot.course_id = course_id
    slot.lecturer_course_id = lecturer_course_id
    slot.day_of_week = interval.day_of_week
    slot.start_time = interval.start
    slot.end_time = interval.end
    if data.get("room_number"):
        slot.room_number = data["room_number"].strip()
    await db.commit()
    await db.refresh(slot)
    logger.info("timetable_slot_updated", timetable_id=str(tt.id), slot_id=str(slot.id))
    return _slot_to_response(slot)


async def delete_slot(db: AsyncSession, actor: CurrentUser, timetable_id: UUID, slot_id: UUID) -> None:
    ensure_role(actor, TIMETABLE_EDITOR_ROLES, "Only staff or the registrar can edit timetables")
    slot = await _get_slot(db, timetable_id, slot_id)
    await db.delete(slot)
    await db.commit()
    logger.info("timetable_slot_deleted", timetable_id=str(timetable_id), slot_id=str(slot_id))


# ----- Publication -----

async def set_published(
    db: AsyncSession,
    actor: CurrentUser,
    timetable_id: UUID,
    is_published: bool = True,
) -> TimetableResponse:
    """
    Publishing unpublishes every other timetable of the same semester in the same
    transaction. Unpublishing touches only this timetable.
    """
    ensure_role(actor, PUBLISHER_ROLES, "Only the registrar can publish timetables")
    tt = await _lock_timetable(db, timetable_id)
    if is_published:
        await set_exclusive_flag(db, Timetable, "is_published", tt.id, {"semester_id": tt.semester_id})
    else:
        tt.is_published = False
    tt.updated_at = datetime.utcnow()
    await db.commit()

    response = _to_response(await _load_timetable(db, timetable_id))
    logger.info(
        "timetable_publication_changed",
        timetable_id=str(timetable_id),
        semester_id=str(response.semester_id),
        is_published=is_published,
    )
    if is_published:
        await deliver(
            db,
            OutgoingNotification(
                role=UserRole.STUDENT.value,
                title="Timetable Published",
                message=f"The timetable '{response.name}' has been published.",
                type=NotificationType.INFO.value,
            ),
        )
    return response


async def publish(db: AsyncSession, actor: CurrentUser, timetable_id: UUID) -> TimetableResponse:
    return await set_published(db, actor, timetable_id, True)


async def unpublish(db: AsyncSession, actor: CurrentUser, timetable_id: UUID) -> TimetableResponse:
    return await set_published(db, actor, timetable_id, False)


async def _published_for(db: AsyncSession, semester_id: UUID) -> Timetable:
    result = await db.execute(
        select(Timetable)
        .where(Timetable.semester_id == semester_id, Timetable.is_published.is_(True))
        .options(selectinload(Timetable.slots))
    )
    published = list(result.scalars().all())
    if not published:
        raise NotFoundError("No published timetable for this semester")
    if len(published) > 1:
        logger.error(
            "multiple_published_timetables",
            semester_id=str(semester_id),
            timetable_ids=[str(t.id) for t in published],
        )
        raise ConsistencyError("More than one timetable is published for this semester")
    return published[0]


async def get_published(db: AsyncSession, semester_id: UUID) -> TimetableResponse:
    """The single published timetable of a semester. None -> NotFoundError; several -> ConsistencyError."""
    return _to_response(await _published_for(db, semester_id))


async def get_user_timetable(db: AsyncSession, actor: CurrentUser) -> UserTimetableResponse:
    """
    Published timetable of the active semester, reduced to the slots relevant to the caller:
    a student's APPROVED courses, a lecturer's assigned courses, everything for admin/registrar.
    """
    semester = await get_active_semester(db)
    if not semester:
        raise NotFoundError("No active semester")
    tt = await _published_for(db, semester.id)
    slots = _sorted_slots(tt.slots)

    if actor.role == UserRole.STUDENT.value:
        approved = await lookup_approved_course_uploads(db, actor.id, semester.id)
        course_ids = {cu.course_id for cu in approved}
        slots = [s for s in slots if s.course_id in course_ids]
    elif actor.role == UserRole.STAFF.value:
        result = await db.execute(
            select(LecturerCourse.course_id).where(
                LecturerCourse.lecturer_id == actor.id,
                LecturerCourse.semester_id == semester.id,
            )
        )
        course_ids = set(result.scalars().all())
        slots = [s for s in slots if s.course_id in course_ids]

    return UserTimetableResponse(
        semester_id=semester.id,
        timetable_id=tt.id,
        timetable_name=tt.name,
        slots=[_slot_to_response(s) for s in slots],
    )
