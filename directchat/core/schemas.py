from typing import Optional
from uuid import UUID

from pydantic import BaseModel


class Identity(BaseModel):
    id: UUID
    username: str
    avatar_url: Optional[str] = None
