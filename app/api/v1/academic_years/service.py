from datetime import date
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.rbac import ensure_role
from app.auth.schemas import CurrentUser
from app.core.enums import APPROVER_ROLES
from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.core.logging import get_logger
from app.core.models import AcademicYear
from app.core.services import set_exclusive_flag

from .schemas import AcademicYearCreate, AcademicYearResponse

logger = get_logger(__name__)


def _to_response(ay: AcademicYear) -> AcademicYearResponse:
    return AcademicYearResponse(
        id=ay.id,
        name=ay.name,
        start_date=ay.start_date,
        end_date=ay.end_date,
        is_active=ay.is_active,
        created_at=ay.created_at,
        updated_at=ay.updated_at,
    )


def _validate_dates(start_date: date, end_date: date) -> None:
    if end_date <= start_date:
        raise ValidationError("end_date must be after start_date")


async def create_academic_year(
    db: AsyncSession,
    actor: CurrentUser,
    payload: AcademicYearCreate,
) -> AcademicYearResponse:
    """Create academic year. If is_active=true, deactivate all other years (same transaction)."""
    ensure_role(actor, APPROVER_ROLES, "Only an admin or registrar can create academic years")
    _validate_dates(payload.start_date, payload.end_date)
    name = payload.name.strip()
    existing = await db.execute(select(AcademicYear.id).where(AcademicYear.name == name))
    if existing.scalar_one_or_none():
        raise ConflictError(f"Academic year with name '{name}' already exists")

    ay = AcademicYear(
        name=name,
        start_date=payload.start_date,
        end_date=payload.end_date,
        is_active=False,
    )
    db.add(ay)
    try:
        await db.flush()
        if payload.is_active:
            await set_exclusive_flag(db, AcademicYear, "is_active", ay.id)
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError(f"Academic year with name '{name}' already exists")
    await db.refresh(ay)
    logger.info("academic_year_created", academic_year_id=str(ay.id), is_active=ay.is_active)
    return _to_response(ay)


async def list_academic_years(db: AsyncSession) -> List[AcademicYearResponse]:
    result = await db.execute(select(AcademicYear).order_by(AcademicYear.start_date.desc()))
    return [_to_response(ay) for ay in result.scalars().all()]


async def get_active_academic_year(db: AsyncSession) -> Optional[AcademicYearResponse]:
    result = await db.execute(select(AcademicYear).where(AcademicYear.is_active.is_(True)))
    ay = result.scalars().first()
    return _to_response(ay) if ay else None


async def activate_academic_year(
    db: AsyncSession,
    actor: CurrentUser,
    academic_year_id: UUID,
) -> AcademicYearResponse:
    """Make this the only active academic year (transaction)."""
    ensure_role(actor, APPROVER_ROLES, "Only an admin or registrar can activate academic years")
    ay = await db.get(AcademicYear, academic_year_id)
    if not ay:
        raise NotFoundError("Academic year not found")
    await set_exclusive_flag(db, AcademicYear, "is_active", ay.id)
    await db.commit()
    await db.refresh(ay)
    logger.info("academic_year_activated", academic_year_id=str(ay.id))
    return _to_response(ay)
