from typing import List, Optional
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.rbac import ensure_role
from app.auth.schemas import CurrentUser
from app.core.enums import APPROVER_ROLES
from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.core.logging import get_logger
from app.core.models import AcademicYear, Semester
from app.core.services import set_exclusive_flag

from .schemas import SemesterCreate, SemesterResponse

logger = get_logger(__name__)


def _to_response(s: Semester) -> SemesterResponse:
    return SemesterResponse(
        id=s.id,
        academic_year_id=s.academic_year_id,
        name=s.name,
        code=s.code,
        start_date=s.start_date,
        end_date=s.end_date,
        registration_deadline=s.registration_deadline,
        course_upload_deadline=s.course_upload_deadline,
        is_active=s.is_active,
        created_at=s.created_at,
        updated_at=s.updated_at,
    )


async def create_semester(
    db: AsyncSession,
    actor: CurrentUser,
    payload: SemesterCreate,
) -> SemesterResponse:
    ensure_role(actor, APPROVER_ROLES, "Only an admin or registrar can create semesters")
    if payload.end_date <= payload.start_date:
        raise ValidationError("end_date must be after start_date")
    if payload.academic_year_id and not await db.get(AcademicYear, payload.academic_year_id):
        raise NotFoundError("Academic year not found")

    name = payload.name.strip()
    code = payload.code.strip().upper()
    existing = await db.execute(
        select(Semester.id).where(or_(Semester.name == name, Semester.code == code))
    )
    if existing.scalars().first():
        raise ConflictError("A semester with this name or code already exists")

    sem = Semester(
        academic_year_id=payload.academic_year_id,
        name=name,
        code=code,
        start_date=payload.start_date,
        end_date=payload.end_date,
        registration_deadline=payload.registration_deadline,
        course_upload_deadline=payload.course_upload_deadline,
        is_active=False,
    )
    db.add(sem)
    try:
        await db.flush()
        if payload.is_active:
            await set_exclusive_flag(db, Semester, "is_active", sem.id)
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("A semester with this name or code already exists")
    await db.refresh(sem)
    logger.info("semester_created", semester_id=str(sem.id), code=sem.code, is_active=sem.is_active)
    return _to_response(sem)


async def list_semesters(
    db: AsyncSession,
    academic_year_id: Optional[UUID] = None,
) -> List[SemesterResponse]:
    stmt = select(Semester)
    if academic_year_id is not None:
        stmt = stmt.where(Semester.academic_year_id == academic_year_id)
    stmt = stmt.order_by(Semester.start_date.desc())
    result = await db.execute(stmt)
    return [_to_response(s) for s in result.scalars().all()]


async def get_active_semester(db: AsyncSession) -> Optional[Semester]:
    """The single active semester, or None."""
    result = await db.execute(
        select(Semester).where(Semester.is_active.is_(True)).order_by(Semester.start_date.desc())
    )
    return result.scalars().first()


async def activate_semester(
    db: AsyncSession,
    actor: CurrentUser,
    semester_id: UUID,
) -> SemesterResponse:
    """Activate this semester; all others are deactivated in the same transaction."""
    ensure_role(actor, APPROVER_ROLES, "Only an admin or registrar can activate semesters")
    sem = await db.get(Semester, semester_id)
    if not sem:
        raise NotFoundError("Semester not found")
    await set_exclusive_flag(db, Semester, "is_active", sem.id)
    await db.commit()
    await db.refresh(sem)
    logger.info("semester_activated", semester_id=str(sem.id))
    return _to_response(sem)
