from typing import Optional

from pydantic import BaseModel


class InboundMessage(BaseModel):
    """Fields read from the Twilio WhatsApp form payload."""

    body: str = ""
    sender: str
    profile_name: Optional[str] = None
    num_media: int = 0
    media_url: Optional[str] = None

    @property
    def has_media(self) -> bool:
        return self.num_media > 0 and bool(self.media_url)
