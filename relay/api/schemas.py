"""Request bodies for the relay API (responses are the relay's own result models)."""
from typing import Annotated, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

Byte = Annotated[int, Field(ge=0, le=255)]


class RelayRequest(BaseModel):
    """
    Body of ``POST /audio-relay``: an ``action`` name plus whichever of the
    identifiers that action needs, e.g.
    ``{"action": "getAudio", "driverId": "drv1", "tourId": "tourA"}``.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    action: str
    tour_id: Optional[str] = None
    driver_id: Optional[str] = None
    admin_id: Optional[str] = None
    session_id: Optional[str] = None
    audio_data: Optional[List[Byte]] = None
    mime_type: Optional[str] = None

    def payload(self) -> bytes:
        return bytes(self.audio_data or ())
