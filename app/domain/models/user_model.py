from pydantic import BaseModel, field_validator
from typing import Optional, Literal
from datetime import datetime

Role = Literal["admin", "user"]

class UserContext(BaseModel):
    id: str
    username: str
    email: str
    full_name: Optional[str] = None
    role: Role = "user"
    is_active: bool = True
    created_at: Optional[datetime] = None

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_str(cls, v):
        # o Auth Service pode devolver o id como número
        return str(v) if v is not None else v
