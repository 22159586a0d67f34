import pytest
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.course_uploads import service as course_upload_service
from app.api.v1.registrations import service as registration_service
from app.api.v1.registrations.schemas import RegistrationSubmit
from app.api.v1.timetables import service
from app.api.v1.timetables.schemas import TimetableCreate, TimetableSlotCreate, TimetableSlotUpdate
from app.core.exceptions import AuthorizationError, ConflictError, ConsistencyError, NotFoundError, ValidationError
from app.core.models import Timetable

from conftest import as_actor


def _slot(course, day: int, start: str, end: str, room: str = "LT1", **kwargs) -> TimetableSlotCreate:
    return TimetableSlotCreate(course_id=course.id, day_of_week=day, start_time=start, end_time=end, room_number=room, **kwargs)


async def _timetable(db: AsyncSession, actor, semester, name: str = "Main"):
    return await service.create_timetable(db, as_actor(actor), TimetableCreate(semester_id=semester.id, name=name))


@pytest.mark.asyncio
async def test_slot_conflict_scenario(db_session: AsyncSession, staff, semester, courses) -> None:
    tt = await _timetable(db_session, staff, semester)
    first = await service.add_slot(db_session, as_actor(staff), tt.id, _slot(courses[0], 0, "09:00", "10:00", "LT1"))

    with pytest.raises(ConflictError) as exc:
        await service.add_slot(db_session, as_actor(staff), tt.id, _slot(courses[1], 0, "09:30", "10:30", "LT2"))
    assert [c["id"] for c in exc.value.details] == [str(first.id)]
    assert exc.value.details[0]["start_time"] == "09:00"

    back_to_back = await service.add_slot(db_session, as_actor(staff), tt.id, _slot(courses[1], 0, "10:00", "11:00", "LT2"))
    other_day = await service.add_slot(db_session, as_actor(staff), tt.id, _slot(courses[2], 1, "09:00", "10:00", "LT1"))

    full = await service.get_timetable(db_session, tt.id)
    assert [s.id for s in full.slots] == [first.id, back_to_back.id, other_day.id]


@pytest.mark.asyncio
async def test_conflict_lists_every_overlapping_slot(db_session: AsyncSession, registrar, semester, courses) -> None:
    tt = await _timetable(db_session, registrar, semester)
    a = await service.add_slot(db_session, as_actor(registrar), tt.id, _slot(courses[0], 2, "09:00", "10:00", "LT1"))
    b = await service.add_slot(db_session, as_actor(registrar), tt.id, _slot(courses[1], 2, "10:00", "11:00", "LAB"))

    with pytest.raises(ConflictError) as exc:
        await service.add_slot(db_session, as_actor(registrar), tt.id, _slot(courses[2], 2, "09:30", "10:30", "HALL"))
    assert {c["id"] for c in exc.value.details} == {str(a.id), str(b.id)}


@pytest.mark.asyncio
async def test_slot_requires_valid_interval(db_session: AsyncSession, staff, semester, courses) -> None:
    tt = await _timetable(db_session, staff, semester)
    with pytest.raises(ValidationError):
        await service.add_slot(db_session, as_actor(staff), tt.id, _slot(courses[0], 0, "10:00", "10:00"))
    with pytest.raises(ValidationError):
        await service.add_slot(db_session, as_actor(staff), tt.id, _slot(courses[0], 0, "11:00", "10:00"))


@pytest.mark.asyncio
async def test_students_cannot_edit_timetables(db_session: AsyncSession, staff, student, semester, courses) -> None:
    with pytest.raises(AuthorizationError):
        await _timetable(db_session, student, semester)
    tt = await _timetable(db_session, staff, semester)
    with pytest.raises(AuthorizationError):
        await service.add_slot(db_session, as_actor(student), tt.id, _slot(courses[0], 0, "09:00", "10:00"))


@pytest.mark.asyncio
async def test_update_slot_ignores_itself(db_session: AsyncSession, staff, semester, courses) -> None:
    tt = await _timetable(db_session, staff, semester)
    morning = await service.add_slot(db_session, as_actor(staff), tt.id, _slot(courses[0], 0, "09:00", "10:00"))
    await service.add_slot(db_session, as_actor(staff), tt.id, _slot(courses[1], 0, "10:00", "11:00"))

    moved = await service.update_slot(
        db_session, as_actor(staff), tt.id, morning.id, TimetableSlotUpdate(start_time="08:30", room_number="LT3")
    )
    assert moved.start_time.strftime("%H:%M") == "08:30"
    assert moved.end_time.strftime("%H:%M") == "10:00"
    assert moved.room_number == "LT3"

    with pytest.raises(ConflictError):
        await service.update_slot(db_session, as_actor(staff), tt.id, morning.id, TimetableSlotUpdate(end_time="10:15"))

    to_tuesday = await service.update_slot(
        db_session, as_actor(staff), tt.id, morning.id, TimetableSlotUpdate(day_of_week=1, end_time="10:15")
    )
    assert to_tuesday.day_of_week == 1


@pytest.mark.asyncio
async def test_delete_slot(db_session: AsyncSession, staff, semester, courses) -> None:
    tt = await _timetable(db_session, staff, semester)
    slot = await service.add_slot(db_session, as_actor(staff), tt.id, _slot(courses[0], 0, "09:00", "10:00"))
    await service.delete_slot(db_session, as_actor(staff), tt.id, slot.id)
    assert (await service.get_timetable(db_session, tt.id)).slots == []
    with pytest.raises(NotFoundError):
        await service.delete_slot(db_session, as_actor(staff), tt.id, slot.id)


@pytest.mark.asyncio
async def test_single_published_timetable_per_semester(
    db_session: AsyncSession, staff, registrar, semester, make_semester
) -> None:
    draft_a = await _timetable(db_session, staff, semester, "Draft A")
    draft_b = await _timetable(db_session, staff, semester, "Draft B")
    next_sem = await make_semester("S2")
    elsewhere = await _timetable(db_session, staff, next_sem, "Next semester")
    await service.publish(db_session, as_actor(registrar), elsewhere.id)

    await service.publish(db_session, as_actor(registrar), draft_a.id)
    assert (await service.get_published(db_session, semester.id)).id == draft_a.id

    await service.publish(db_session, as_actor(registrar), draft_b.id)
    listed = {t.id: t.is_published for t in await service.list_timetables(db_session, semester_id=semester.id)}
    assert listed == {draft_a.id: False, draft_b.id: True}
    assert (await service.get_published(db_session, semester.id)).id == draft_b.id
    assert (await service.get_published(db_session, next_sem.id)).id == elsewhere.id


@pytest.mark.asyncio
async def test_only_registrar_publishes(db_session: AsyncSession, staff, semester) -> None:
    tt = await _timetable(db_session, staff, semester)
    with pytest.raises(AuthorizationError):
        await service.publish(db_session, as_actor(staff), tt.id)


@pytest.mark.asyncio
async def test_get_published_errors(db_session: AsyncSession, staff, registrar, semester) -> None:
    a = await _timetable(db_session, staff, semester, "A")
    b = await _timetable(db_session, staff, semester, "B")
    with pytest.raises(NotFoundError):
        await service.get_published(db_session, semester.id)

    await service.publish(db_session, as_actor(registrar), a.id)
    await service.unpublish(db_session, as_actor(registrar), a.id)
    with pytest.raises(NotFoundError):
        await service.get_published(db_session, semester.id)

    # Bypass the write path to simulate corrupted state
    await db_session.execute(update(Timetable).where(Timetable.id.in_([a.id, b.id])).values(is_published=True))
    await db_session.commit()
    with pytest.raises(ConsistencyError):
        await service.get_published(db_session, semester.id)


@pytest.mark.asyncio
async def test_personal_timetable_projection(
    db_session: AsyncSession, student, staff, registrar, semester, courses, lecturer_link
) -> None:
    tt = await _timetable(db_session, registrar, semester)
    for i, course in enumerate(courses):
        await service.add_slot(db_session, as_actor(registrar), tt.id, _slot(course, i, "09:00", "10:00"))
    await service.publish(db_session, as_actor(registrar), tt.id)

    reg = await registration_service.submit_registration(
        db_session, as_actor(student), RegistrationSubmit(semester_id=semester.id, course_ids=[c.id for c in courses])
    )
    approved_course = courses[1]
    cu = next(x for x in reg.course_uploads if x.course_id == approved_course.id)
    await course_upload_service.approve_course(db_session, as_actor(registrar), cu.id)

    mine = await service.get_user_timetable(db_session, as_actor(student))
    assert mine.timetable_id == tt.id
    assert [s.course_id for s in mine.slots] == [approved_course.id]

    teaching = await service.get_user_timetable(db_session, as_actor(staff))
    assert [s.course_id for s in teaching.slots] == [courses[0].id]

    everything = await service.get_user_timetable(db_session, as_actor(registrar))
    assert len(everything.slots) == 3


@pytest.mark.asyncio
async def test_delete_timetable_registrar_only(db_session: AsyncSession, staff, registrar, semester, courses) -> None:
    tt = await _timetable(db_session, staff, semester)
    await service.add_slot(db_session, as_actor(staff), tt.id, _slot(courses[0], 0, "09:00", "10:00"))
    with pytest.raises(AuthorizationError):
        await service.delete_timetable(db_session, as_actor(staff), tt.id)
    await service.delete_timetable(db_session, as_actor(registrar), tt.id)
    with pytest.raises(NotFoundError):
        await service.get_timetable(db_session, tt.id)
