"""Who teaches what in which semester. Gates course-level decisions by staff."""

from typing import List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.models import User
from app.auth.rbac import ensure_role
from app.auth.schemas import CurrentUser
from app.core.enums import UserRole
from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.core.logging import get_logger
from app.core.models import Course, LecturerCourse, Semester

from .schemas import LecturerCourseCreate, LecturerCourseResponse

logger = get_logger(__name__)

ASSIGNER_ROLES = (UserRole.REGISTRAR.value,)


def _to_response(lc: LecturerCourse) -> LecturerCourseResponse:
    return LecturerCourseResponse(
        id=lc.id,
        lecturer_id=lc.lecturer_id,
        course_id=lc.course_id,
        semester_id=lc.semester_id,
        created_at=lc.created_at,
    )


async def create_lecturer_course(
    db: AsyncSession,
    actor: CurrentUser,
    payload: LecturerCourseCreate,
) -> LecturerCourseResponse:
    ensure_role(actor, ASSIGNER_ROLES, "Only the registrar can assign lecturers to courses")
    lecturer = await db.get(User, payload.lecturer_id)
    if not lecturer or lecturer.role != UserRole.STAFF.value:
        raise ValidationError("Invalid lecturer (must be a staff member)")
    if not await db.get(Course, payload.course_id):
        raise NotFoundError("Course not found")
    if not await db.get(Semester, payload.semester_id):
        raise NotFoundError("Semester not found")

    existing = await db.execute(
        select(LecturerCourse.id).where(
            LecturerCourse.lecturer_id == payload.lecturer_id,
            LecturerCourse.course_id == payload.course_id,
            LecturerCourse.semester_id == payload.semester_id,
        )
    )
    if existing.scalars().first():
        raise ConflictError("This lecturer is already assigned to the course for this semester")

    try:
        lc = LecturerCourse(
            lecturer_id=payload.lecturer_id,
            course_id=payload.course_id,
            semester_id=payload.semester_id,
        )
        db.add(lc)
        await db.commit()
        await db.refresh(lc)
    except IntegrityError:
        await db.rollback()
        raise ConflictError("This lecturer is already assigned to the course for this semester")
    logger.info(
        "lecturer_course_created",
        lecturer_course_id=str(lc.id),
        lecturer_id=str(lc.lecturer_id),
        course_id=str(lc.course_id),
        semester_id=str(lc.semester_id),
    )
    return _to_response(lc)


async def list_lecturer_courses(
    db: AsyncSession,
    lecturer_id: Optional[UUID] = None,
    course_id: Optional[UUID] = None,
    semester_id: Optional[UUID] = None,
) -> List[LecturerCourseResponse]:
    stmt = select(LecturerCourse)
    if lecturer_id is not None:
        stmt = stmt.where(LecturerCourse.lecturer_id == lecturer_id)
    if course_id is not None:
        stmt = stmt.where(LecturerCourse.course_id == course_id)
    if semester_id is not None:
        stmt = stmt.where(LecturerCourse.semester_id == semester_id)
    stmt = stmt.order_by(LecturerCourse.semester_id, LecturerCourse.created_at)
    result = await db.execute(stmt)
    return [_to_response(lc) for lc in result.scalars().all()]


async def delete_lecturer_course(db: AsyncSession, actor: CurrentUser, lecturer_course_id: UUID) -> None:
    """Timetable slots pointing at the assignment keep their course, the lecturer link is cleared."""
    ensure_role(actor, ASSIGNER_ROLES, "Only the registrar can remove lecturer assignments")
    lc = await db.get(LecturerCourse, lecturer_course_id)
    if not lc:
        raise NotFoundError("Lecturer assignment not found")
    await db.delete(lc)
    await db.commit()
    logger.info("lecturer_course_deleted", lecturer_course_id=str(lecturer_course_id), actor_id=str(actor.id))
