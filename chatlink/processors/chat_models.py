# Chat Models - Outbound Wire Frames

"""
Chat Models Module

Outbound frame shapes:
- Chat message: {"roomId": str, "sender": str, "message": str}
- Liveness probe: {"type": "ping"}
"""

from pydantic import BaseModel, ConfigDict, Field

PING_FRAME = {"type": "ping"}
PONG_TYPE = "pong"


class ChatMessage(BaseModel):
    """Outbound chat message"""
    model_config = ConfigDict(populate_by_name=True)

    room_id: str = Field(alias="roomId")
    sender: str
    message: str

    def to_wire(self) -> str:
        """Serialize with wire field names (roomId)"""
        return self.model_dump_json(by_alias=True)
