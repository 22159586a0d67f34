"""
Semester registration state machine: PENDING -> APPROVED | REJECTED.

Approve/reject write the registration and every child course upload in one transaction;
a registration decision overrides any earlier per-course decision. Approval also issues
the registration card (lookup before create). Notifications go out after commit and
never fail the operation.
"""

from datetime import date, datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.auth.rbac import ensure_role
from app.auth.schemas import CurrentUser
from app.core.enums import APPROVER_ROLES, NotificationType, RegistrationStatus, UserRole
from app.core.exceptions import AuthorizationError, ConflictError, NotFoundError, ValidationError
from app.core.logging import get_logger
from app.core.models import Approval, Course, CourseUpload, Registration, Semester

from app.api.v1.notifications.service import OutgoingNotification, deliver

from . import card_numbers
from .schemas import (
    ApprovalResponse,
    CourseUploadResponse,
    RegistrationDecisionResponse,
    RegistrationResponse,
    RegistrationSubmit,
)

logger = get_logger(__name__)

PENDING = RegistrationStatus.PENDING.value
APPROVED = RegistrationStatus.APPROVED.value
REJECTED = RegistrationStatus.REJECTED.value

# Roles that may read any registration
REVIEWER_ROLES = APPROVER_ROLES + (UserRole.STAFF.value,)


def approval_to_response(a: Approval) -> ApprovalResponse:
    return ApprovalResponse(
        id=a.id,
        course_upload_id=a.course_upload_id,
        course_id=a.course_id,
        user_id=a.user_id,
        semester_id=a.semester_id,
        approver_id=a.approver_id,
        status=a.status,
        comments=a.comments,
        created_at=a.created_at,
    )


def course_upload_to_response(cu: CourseUpload) -> CourseUploadResponse:
    return CourseUploadResponse(
        id=cu.id,
        registration_id=cu.registration_id,
        course_id=cu.course_id,
        user_id=cu.user_id,
        semester_id=cu.semester_id,
        status=cu.status,
        created_at=cu.created_at,
        updated_at=cu.updated_at,
        approvals=[approval_to_response(a) for a in cu.approvals],
    )


def _to_response(r: Registration) -> RegistrationResponse:
    return RegistrationResponse(
        id=r.id,
        user_id=r.user_id,
        semester_id=r.semester_id,
        status=r.status,
        rejection_reason=r.rejection_reason,
        decided_by=r.decided_by,
        decided_at=r.decided_at,
        created_at=r.created_at,
        updated_at=r.updated_at,
        course_uploads=[course_upload_to_response(cu) for cu in r.course_uploads],
    )


async def _load_registration(db: AsyncSession, registration_id: UUID) -> Optional[Registration]:
    """Registration with course uploads and their approval history, refreshed from the store."""
    result = await db.execute(
        select(Registration)
        .where(Registration.id == registration_id)
        .options(selectinload(Registration.course_uploads).selectinload(CourseUpload.approvals))
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _get_for_update(db: AsyncSession, registration_id: UUID) -> Registration:
    result = await db.execute(
        select(Registration)
        .where(Registration.id == registration_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    reg = result.scalar_one_or_none()
    if not reg:
        raise NotFoundError("Registration not found")
    return reg


async def _cascade_status(
    db: AsyncSession,
    registration: Registration,
    new_status: str,
    approver_id: UUID,
    comments: Optional[str],
) -> int:
    """Force every child course upload to new_status and log one approval record each."""
    rows = (
        await db.execute(
            select(CourseUpload.id, CourseUpload.course_id).where(CourseUpload.registration_id == registration.id)
        )
    ).all()
    await db.execute(
        update(CourseUpload)
        .where(CourseUpload.registration_id == registration.id)
        .values(status=new_status, updated_at=datetime.utcnow())
        .execution_options(synchronize_session="fetch")
    )
    for course_upload_id, course_id in rows:
        db.add(
            Approval(
                course_upload_id=course_upload_id,
                course_id=course_id,
                user_id=registration.user_id,
                semester_id=registration.semester_id,
                approver_id=approver_id,
                status=new_status,
                comments=comments,
            )
        )
    return len(rows)


# ----- Submit -----

async def submit_registration(
    db: AsyncSession,
    actor: CurrentUser,
    payload: RegistrationSubmit,
) -> RegistrationResponse:
    """
    Create a PENDING registration with one PENDING course upload per course.
    A second submission for the same semester fails with ConflictError.
    """
    ensure_role(actor, (UserRole.STUDENT.value,), "Only students can submit a semester registration")
    course_ids = list(payload.course_ids)
    if not course_ids:
        raise ValidationError("At least one course is required")
    if len(set(course_ids)) != len(course_ids):
        raise ValidationError("A course may only be requested once")

    semester = await db.get(Semester, payload.semester_id)
    if not semester:
        raise NotFoundError("Semester not found")
    if semester.registration_deadline and date.today() > semester.registration_deadline:
        raise ValidationError("The registration deadline for this semester has passed")

    found = set((await db.execute(select(Course.id).where(Course.id.in_(course_ids)))).scalars().all())
    missing = [str(cid) for cid in course_ids if cid not in found]
    if missing:
        raise NotFoundError(f"Course(s) not found: {', '.join(missing)}")

    existing = await db.execute(
        select(Registration.id).where(
            Registration.user_id == actor.id,
            Registration.semester_id == semester.id,
        )
    )
    if existing.scalar_one_or_none():
        raise ConflictError("A registration already exists for this semester")

    reg = Registration(user_id=actor.id, semester_id=semester.id, status=PENDING)
    db.add(reg)
    try:
        await db.flush()
        for course_id in course_ids:
            db.add(
                CourseUpload(
                    registration_id=reg.id,
                    course_id=course_id,
                    user_id=actor.id,
                    semester_id=semester.id,
                    status=PENDING,
                )
            )
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("A registration already exists for this semester")

    response = _to_response(await _load_registration(db, reg.id))
    logger.info(
        "registration_submitted",
        registration_id=str(response.id),
        semester_id=str(semester.id),
        course_count=len(course_ids),
    )
    await deliver(
        db,
        OutgoingNotification(
            user_id=actor.id,
            title="Registration Submitted",
            message=f"Your registration for {semester.name} has been submitted and is pending approval.",
            type=NotificationType.REGISTRATION.value,
        ),
        OutgoingNotification(
            role=UserRole.REGISTRAR.value,
            title="New Registration",
            message=f"A new registration for {semester.name} is awaiting approval.",
            type=NotificationType.REGISTRATION.value,
        ),
    )
    return response


# ----- Approve / reject -----

async def approve_registration(
    db: AsyncSession,
    actor: CurrentUser,
    registration_id: UUID,
) -> RegistrationDecisionResponse:
    """
    PENDING -> APPROVED. Every course upload is forced to APPROVED, overriding per-course
    rejections, and the registration card is issued. Approving an APPROVED registration
    changes nothing and returns the same card.
    """
    ensure_role(actor, APPROVER_ROLES, "Only an admin or registrar can approve registrations")
    reg = await _get_for_update(db, registration_id)
    if reg.status == REJECTED:
        raise ConflictError("Registration has been rejected and cannot be approved")
    semester = await db.get(Semester, reg.semester_id)

    transitioned = reg.status != APPROVED
    try:
        if transitioned:
            reg.status = APPROVED
            reg.rejection_reason = None
            reg.decided_by = actor.id
            reg.decided_at = datetime.utcnow()
            await _cascade_status(db, reg, APPROVED, actor.id, "Approved with semester registration")
        card, _ = await card_numbers.issue_card(db, reg, semester)
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("Registration was modified concurrently; retry the approval")

    response = RegistrationDecisionResponse(
        registration=_to_response(await _load_registration(db, registration_id)),
        registration_card=card_numbers.card_to_response(card),
    )
    if transitioned:
        logger.info(
            "registration_approved",
            registration_id=str(registration_id),
            approver_id=str(actor.id),
            card_number=card.card_number,
        )
        await deliver(
            db,
            OutgoingNotification(
                user_id=response.registration.user_id,
                title="Registration Approved",
                message=f"Your registration for {semester.name} has been approved. Card number: {card.card_number}.",
                type=NotificationType.REGISTRATION.value,
            ),
        )
    return response


async def reject_registration(
    db: AsyncSession,
    actor: CurrentUser,
    registration_id: UUID,
    reason: Optional[str],
) -> RegistrationDecisionResponse:
    """PENDING -> REJECTED with a reason; every course upload is forced to REJECTED."""
    ensure_role(actor, APPROVER_ROLES, "Only an admin or registrar can reject registrations")
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("A rejection reason is required")
    reg = await _get_for_update(db, registration_id)
    if reg.status != PENDING:
        raise ConflictError(f"Invalid status transition: only PENDING can be rejected (current: {reg.status})")

    reg.status = REJECTED
    reg.rejection_reason = reason
    reg.decided_by = actor.id
    reg.decided_at = datetime.utcnow()
    try:
        await _cascade_status(db, reg, REJECTED, actor.id, reason)
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("Registration was modified concurrently; retry the rejection")

    response = RegistrationDecisionResponse(
        registration=_to_response(await _load_registration(db, registration_id)),
    )
    logger.info("registration_rejected", registration_id=str(registration_id), approver_id=str(actor.id))
    await deliver(
        db,
        OutgoingNotification(
            user_id=response.registration.user_id,
            title="Registration Rejected",
            message=f"Your semester registration has been rejected. Reason: {reason}",
            type=NotificationType.REGISTRATION.value,
        ),
    )
    return response


# ----- Reads / delete -----

async def get_registration(
    db: AsyncSession,
    actor: CurrentUser,
    registration_id: UUID,
) -> RegistrationResponse:
    reg = await _load_registration(db, registration_id)
    if not reg:
        raise NotFoundError("Registration not found")
    if reg.user_id != actor.id and actor.role not in REVIEWER_ROLES:
        raise AuthorizationError("You can only view your own registration")
    return _to_response(reg)


async def list_registrations(
    db: AsyncSession,
    actor: CurrentUser,
    semester_id: Optional[UUID] = None,
    status_filter: Optional[str] = None,
    user_id: Optional[UUID] = None,
) -> List[RegistrationResponse]:
    """Reviewers see every registration; anyone else only their own."""
    if actor.role not in REVIEWER_ROLES:
        user_id = actor.id
    stmt = select(Registration).options(
        selectinload(Registration.course_uploads).selectinload(CourseUpload.approvals)
    )
    if semester_id is not None:
        stmt = stmt.where(Registration.semester_id == semester_id)
    if status_filter:
        stmt = stmt.where(Registration.status == status_filter)
    if user_id is not None:
        stmt = stmt.where(Registration.user_id == user_id)
    stmt = stmt.order_by(Registration.created_at.desc())
    result = await db.execute(stmt)
    return [_to_response(r) for r in result.scalars().all()]


async def delete_registration(
    db: AsyncSession,
    actor: CurrentUser,
    registration_id: UUID,
) -> None:
    """
    Owner may delete while PENDING; admin/registrar while not APPROVED. Course uploads go
    with it, approval records stay. An approved registration has an issued card and is kept.
    """
    reg = await db.get(Registration, registration_id)
    if not reg:
        raise NotFoundError("Registration not found")
    if actor.role not in APPROVER_ROLES and reg.user_id != actor.id:
        raise AuthorizationError("You can only delete your own registration")
    if reg.status == APPROVED:
        raise ConflictError("Approved registrations cannot be deleted; a registration card has been issued")
    if actor.role not in APPROVER_ROLES and reg.status != PENDING:
        raise AuthorizationError("Only a pending registration can be withdrawn; contact the registrar")
    await db.delete(reg)
    await db.commit()
    logger.info("registration_deleted", registration_id=str(registration_id), actor_id=str(actor.id))
