import pytest
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.course_uploads import service
from app.api.v1.registrations import service as registration_service
from app.api.v1.registrations.schemas import RegistrationSubmit
from app.core.exceptions import AuthorizationError, ConflictError, NotFoundError
from app.core.models import Approval, CourseUpload, Notification, Registration

from conftest import as_actor


async def _register(db: AsyncSession, student, semester, courses):
    payload = RegistrationSubmit(semester_id=semester.id, course_ids=[c.id for c in courses])
    return await registration_service.submit_registration(db, as_actor(student), payload)


def _upload_for(reg, course):
    return next(cu for cu in reg.course_uploads if cu.course_id == course.id)


@pytest.mark.asyncio
async def test_registrar_decisions_append_approval_records(
    db_session: AsyncSession, student, registrar, semester, courses
) -> None:
    reg = await _register(db_session, student, semester, courses[:1])
    cu = reg.course_uploads[0]

    approved = await service.approve_course(db_session, as_actor(registrar), cu.id, "Looks good")
    assert approved.status == "APPROVED"
    assert [(a.status, a.comments) for a in approved.approvals] == [("APPROVED", "Looks good")]

    rejected = await service.reject_course(db_session, as_actor(registrar), cu.id, "Clash with core course")
    assert rejected.status == "REJECTED"
    assert [a.status for a in rejected.approvals] == ["APPROVED", "REJECTED"]

    rows = await db_session.execute(select(Approval).where(Approval.course_upload_id == cu.id))
    assert len(rows.scalars().all()) == 2

    types = (
        await db_session.execute(select(Notification.type).where(Notification.user_id == student.id))
    ).scalars().all()
    assert "COURSE_APPROVAL" in types
    assert "COURSE_REJECTION" in types


@pytest.mark.asyncio
async def test_lecturer_may_decide_only_own_course(
    db_session: AsyncSession, student, staff, semester, courses, lecturer_link
) -> None:
    reg = await _register(db_session, student, semester, courses[:2])
    taught = _upload_for(reg, courses[0])
    not_taught = _upload_for(reg, courses[1])

    result = await service.approve_course(db_session, as_actor(staff), taught.id)
    assert result.status == "APPROVED"
    assert result.approvals[0].approver_id == staff.id

    with pytest.raises(AuthorizationError):
        await service.reject_course(db_session, as_actor(staff), not_taught.id)


@pytest.mark.asyncio
async def test_students_and_admins_cannot_decide_courses(
    db_session: AsyncSession, student, admin, semester, courses
) -> None:
    reg = await _register(db_session, student, semester, courses[:1])
    cu_id = reg.course_uploads[0].id
    with pytest.raises(AuthorizationError):
        await service.approve_course(db_session, as_actor(student), cu_id)
    with pytest.raises(AuthorizationError):
        await service.approve_course(db_session, as_actor(admin), cu_id)


@pytest.mark.asyncio
async def test_course_decision_closed_after_registration_decision(
    db_session: AsyncSession, student, registrar, semester, courses
) -> None:
    reg = await _register(db_session, student, semester, courses)
    await registration_service.approve_registration(db_session, as_actor(registrar), reg.id)

    with pytest.raises(ConflictError):
        await service.reject_course(db_session, as_actor(registrar), reg.course_uploads[0].id, "Too late")

    statuses = (
        await db_session.execute(select(CourseUpload.status).where(CourseUpload.registration_id == reg.id))
    ).scalars().all()
    assert set(statuses) == {"APPROVED"}


@pytest.mark.asyncio
async def test_unknown_course_upload(db_session: AsyncSession, registrar) -> None:
    from uuid import uuid4

    with pytest.raises(NotFoundError):
        await service.approve_course(db_session, as_actor(registrar), uuid4())


@pytest.mark.asyncio
async def test_withdraw_rules(
    db_session: AsyncSession, student, other_student, registrar, semester, courses
) -> None:
    reg = await _register(db_session, student, semester, courses)
    pending = _upload_for(reg, courses[0])
    approved = _upload_for(reg, courses[1])
    rejected = _upload_for(reg, courses[2])
    await service.approve_course(db_session, as_actor(registrar), approved.id)
    await service.reject_course(db_session, as_actor(registrar), rejected.id, "Full")

    with pytest.raises(AuthorizationError):
        await service.withdraw(db_session, as_actor(other_student), pending.id)
    with pytest.raises(AuthorizationError):
        await service.withdraw(db_session, as_actor(student), approved.id)

    await service.withdraw(db_session, as_actor(student), pending.id)
    await service.withdraw(db_session, as_actor(student), rejected.id)
    await service.withdraw(db_session, as_actor(registrar), approved.id)

    remaining = await db_session.execute(select(CourseUpload.id).where(CourseUpload.registration_id == reg.id))
    assert remaining.scalars().all() == []
    history = await db_session.execute(select(Approval.course_upload_id, Approval.course_id, Approval.status))
    assert sorted((row.course_id, row.status) for row in history.all()) == sorted(
        [(courses[1].id, "APPROVED"), (courses[2].id, "REJECTED")]
    )
    detached = await db_session.execute(select(Approval.id).where(Approval.course_upload_id.is_not(None)))
    assert detached.scalars().all() == []


@pytest.mark.asyncio
async def test_withdrawing_a_rejected_course_keeps_its_decision(
    db_session: AsyncSession, student, registrar, semester, courses
) -> None:
    reg = await _register(db_session, student, semester, courses[:2])
    first = _upload_for(reg, courses[0])
    await service.reject_course(db_session, as_actor(registrar), first.id, "Section full")

    await service.withdraw(db_session, as_actor(student), first.id)

    count = await db_session.execute(select(func.count()).select_from(Approval))
    assert count.scalar_one() == 1
    history = await service.list_approvals(db_session, as_actor(student))
    assert len(history) == 1
    assert history[0].course_upload_id is None
    assert history[0].course_id == courses[0].id
    assert history[0].user_id == student.id
    assert history[0].semester_id == semester.id
    assert (history[0].status, history[0].comments) == ("REJECTED", "Section full")


@pytest.mark.asyncio
async def test_withdraw_rereads_a_course_decided_elsewhere(
    db_session: AsyncSession, student, semester, courses
) -> None:
    reg = await _register(db_session, student, semester, courses[:1])
    cu_id = reg.course_uploads[0].id
    held = await db_session.get(CourseUpload, cu_id)
    assert held.status == "PENDING"

    # decided through a table-level statement: the session still holds the PENDING copy
    await db_session.execute(
        update(CourseUpload.__table__).where(CourseUpload.__table__.c.id == cu_id).values(status="APPROVED")
    )
    await db_session.commit()
    assert held.status == "PENDING"

    with pytest.raises(AuthorizationError):
        await service.withdraw(db_session, as_actor(student), cu_id)
    still_there = await db_session.execute(select(CourseUpload.id).where(CourseUpload.id == cu_id))
    assert still_there.scalar_one_or_none() == cu_id

@pytest.mark.asyncio
async def test_add_course_to_pending_registration(
    db_session: AsyncSession, student, other_student, registrar, semester, courses
) -> None:
    reg = await _register(db_session, student, semester, courses[:1])

    added = await service.add_course(db_session, as_actor(student), reg.id, courses[1].id)
    assert added.status == "PENDING"
    assert added.registration_id == reg.id

    with pytest.raises(ConflictError):
        await service.add_course(db_session, as_actor(student), reg.id, courses[1].id)
    with pytest.raises(AuthorizationError):
        await service.add_course(db_session, as_actor(other_student), reg.id, courses[2].id)

    await registration_service.approve_registration(db_session, as_actor(registrar), reg.id)
    with pytest.raises(ConflictError):
        await service.add_course(db_session, as_actor(student), reg.id, courses[2].id)


@pytest.mark.asyncio
async def test_list_and_lookup_approved(
    db_session: AsyncSession, student, other_student, registrar, semester, courses
) -> None:
    reg = await _register(db_session, student, semester, courses)
    await _register(db_session, other_student, semester, courses[:1])
    await service.approve_course(db_session, as_actor(registrar), _upload_for(reg, courses[0]).id)
    await service.reject_course(db_session, as_actor(registrar), _upload_for(reg, courses[1]).id)

    approved = await service.lookup_approved_course_uploads(db_session, student.id, semester.id)
    assert [cu.course_id for cu in approved] == [courses[0].id]

    own = await service.list_course_uploads(db_session, as_actor(student), user_id=other_student.id)
    assert {cu.user_id for cu in own} == {student.id}
    assert len(own) == 3
    everyone = await service.list_course_uploads(db_session, as_actor(registrar), semester_id=semester.id)
    assert len(everyone) == 4


@pytest.mark.asyncio
async def test_add_course_rereads_a_registration_decided_elsewhere(
    db_session: AsyncSession, student, semester, courses
) -> None:
    reg = await _register(db_session, student, semester, courses[:1])
    held = await db_session.get(Registration, reg.id)
    assert held.status == "PENDING"

    await db_session.execute(
        update(Registration.__table__).where(Registration.__table__.c.id == reg.id).values(status="APPROVED")
    )
    await db_session.commit()
    assert held.status == "PENDING"

    with pytest.raises(ConflictError):
        await service.add_course(db_session, as_actor(student), reg.id, courses[1].id)
    uploads = await db_session.execute(select(CourseUpload.course_id).where(CourseUpload.registration_id == reg.id))
    assert uploads.scalars().all() == [courses[0].id]


@pytest.mark.asyncio
async def test_list_approvals_scoped_to_student(
    db_session: AsyncSession, student, other_student, registrar, semester, courses
) -> None:
    mine = await _register(db_session, student, semester, courses[:1])
    theirs = await _register(db_session, other_student, semester, courses[:1])
    await service.approve_course(db_session, as_actor(registrar), mine.course_uploads[0].id)
    await service.reject_course(db_session, as_actor(registrar), theirs.course_uploads[0].id)

    own = await service.list_approvals(db_session, as_actor(student), user_id=other_student.id)
    assert [a.user_id for a in own] == [student.id]
    everyone = await service.list_approvals(db_session, as_actor(registrar), course_id=courses[0].id)
    assert {a.status for a in everyone} == {"APPROVED", "REJECTED"}
    assert await service.list_approvals(db_session, as_actor(registrar), course_id=courses[1].id) == []
