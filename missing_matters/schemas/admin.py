from typing import Optional

from pydantic import BaseModel


class ResetSessionResponse(BaseModel):
    success: bool
    message: str
    user_identity: Optional[str] = None
