"""
Registration card numbers: <PREFIX><YYYY>-<SEMESTER_CODE>-<SEQ>, e.g. BU2025-S1-0007.
SEQ comes from a per-semester counter row incremented by a single UPDATE, so the store
serialises concurrent issuers on that row until commit. card_number is unique in the
schema as the last line of defence.
"""

from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.logging import get_logger
from app.core.models import CardSequence, Registration, RegistrationCard, Semester

from .schemas import RegistrationCardResponse

logger = get_logger(__name__)


def format_card_number(prefix: str, year: int, semester_code: str, sequence: int, width: int = 4) -> str:
    """
    Examples:
        format_card_number("BU", 2025, "S1", 7)  -> "BU2025-S1-0007"
        format_card_number("BU", 2025, "s2", 12345) -> "BU2025-S2-12345"
    """
    if sequence < 1:
        raise ValueError("sequence must be >= 1")
    return f"{prefix.upper()}{year:04d}-{semester_code.strip().upper()}-{sequence:0{width}d}"


async def _next_sequence(db: AsyncSession, semester_id: UUID) -> int:
    result = await db.execute(
        update(CardSequence)
        .where(CardSequence.semester_id == semester_id)
        .values(last_value=CardSequence.last_value + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        # First card for this semester; a racing first issuer fails on the primary key
        db.add(CardSequence(semester_id=semester_id, last_value=1))
        await db.flush()
        return 1
    value = await db.execute(
        select(CardSequence.last_value).where(CardSequence.semester_id == semester_id)
    )
    return value.scalar_one()


async def generate_card_number(db: AsyncSession, semester: Semester) -> str:
    """Mint the next card number for the semester. Runs in the caller's transaction."""
    sequence = await _next_sequence(db, semester.id)
    return format_card_number(
        settings.card_number_prefix,
        semester.start_date.year,
        semester.code,
        sequence,
        settings.card_number_width,
    )


async def get_card(db: AsyncSession, user_id: UUID, semester_id: UUID) -> Optional[RegistrationCard]:
    result = await db.execute(
        select(RegistrationCard).where(
            RegistrationCard.user_id == user_id,
            RegistrationCard.semester_id == semester_id,
        )
    )
    return result.scalar_one_or_none()


async def issue_card(
    db: AsyncSession,
    registration: Registration,
    semester: Semester,
) -> Tuple[RegistrationCard, bool]:
    """
    Return (card, created). Looks up the (user, semester) card first and only mints a
    number when none exists. Caller commits; IntegrityError means a concurrent issuer won.
    """
    existing = await get_card(db, registration.user_id, registration.semester_id)
    if existing:
        return existing, False
    card = RegistrationCard(
        user_id=registration.user_id,
        semester_id=registration.semester_id,
        card_number=await generate_card_number(db, semester),
    )
    db.add(card)
    await db.flush()
    logger.info(
        "registration_card_issued",
        card_number=card.card_number,
        user_id=str(card.user_id),
        semester_id=str(card.semester_id),
    )
    return card, True


def card_to_response(card: RegistrationCard) -> RegistrationCardResponse:
    return RegistrationCardResponse(
        id=card.id,
        user_id=card.user_id,
        semester_id=card.semester_id,
        card_number=card.card_number,
        issued_date=card.issued_date,
    )


async def list_cards(
    db: AsyncSession,
    user_id: Optional[UUID] = None,
    semester_id: Optional[UUID] = None,
) -> List[RegistrationCardResponse]:
    stmt = select(RegistrationCard)
    if user_id is not None:
        stmt = stmt.where(RegistrationCard.user_id == user_id)
    if semester_id is not None:
        stmt = stmt.where(RegistrationCard.semester_id == semester_id)
    stmt = stmt.order_by(RegistrationCard.card_number)
    result = await db.execute(stmt)
    return [card_to_response(c) for c in result.scalars().all()]
