from uuid import UUID

from pydantic import BaseModel, EmailStr


class CurrentUser(BaseModel):
    """Lightweight representation of the authenticated user for role checks."""

    id: UUID
    role: str
    email: EmailStr
    full_name: str
