from typing import Optional
from uuid import UUID

from pydantic import BaseModel


class CurrentUser(BaseModel):
    """Authenticated caller resolved from the bearer token."""

    id: UUID
    role: str
    # Enrollment number for STUDENT tokens
    student_id: Optional[str] = None
    institution_id: Optional[str] = None
