from typing import Optional
from pydantic import BaseModel


class AuthContext(BaseModel):
    user_id: str
    user_name: Optional[str] = None
    user_role: str

    @property
    def actor(self) -> str:
        """Identificación que queda registrada en el historial de estados"""
        return self.user_name or self.user_id
