from uuid import UUID

from pydantic import BaseModel


class CurrentUser(BaseModel):
    """Authenticated actor resolved from the access token."""

    id: UUID
    role: str  # ADMIN | REGISTRAR | STAFF | STUDENT
