from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user
from app.auth.schemas import CurrentUser
from app.core.enums import APPROVER_ROLES
from app.db.session import get_db

from app.api.v1.registrations import card_numbers
from app.api.v1.registrations.schemas import RegistrationCardResponse

router = APIRouter(prefix="/api/v1/registration-cards", tags=["registration-cards"])


@router.get("", response_model=List[RegistrationCardResponse])
async def list_registration_cards(
    semester_id: Optional[UUID] = Query(None),
    user_id: Optional[UUID] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[RegistrationCardResponse]:
    """Admin/registrar list any cards; everyone else gets their own."""
    if current_user.role not in APPROVER_ROLES:
        user_id = current_user.id
    return await card_numbers.list_cards(db, user_id=user_id, semester_id=semester_id)
