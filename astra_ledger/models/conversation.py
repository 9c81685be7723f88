"""
Conversation Models

Chat turns live only in the UI session. They are append-only and are
NEVER written to any storage backend.
"""

from enum import Enum
from io import BytesIO
from typing import Optional
from uuid import uuid4

from PIL import Image, UnidentifiedImageError
from pydantic import BaseModel, ConfigDict, Field, field_validator

from astra_ledger.models.transaction import ExtractedTransaction


ALLOWED_IMAGE_TYPES = {"image/jpeg", "image/png", "image/webp"}


class AgentStatus(str, Enum):
    """What the orchestrator is doing right now."""
    IDLE = "idle"
    VISION = "vision"
    PARSING = "parsing"
    LEDGER = "ledger"
    SUMMARY = "summary"

    @property
    def label(self) -> str:
        return _STATUS_LABELS[self]


_STATUS_LABELS = {
    AgentStatus.IDLE: "Processing...",
    AgentStatus.VISION: "Scanning Receipt...",
    AgentStatus.PARSING: "Parsing Text...",
    AgentStatus.LEDGER: "Updating Ledger...",
    AgentStatus.SUMMARY: "Analyzing...",
}


class TurnRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class ImageAttachment(BaseModel):
    """A receipt photo attached to a user turn."""
    model_config = ConfigDict(frozen=True)

    data: bytes = Field(
        ...,
        min_length=1,
        description="Raw image bytes"
    )
    mime_type: str = Field(
        ...,
        description="Media type sent alongside the image"
    )
    filename: Optional[str] = None

    @field_validator('mime_type')
    @classmethod
    def validate_mime_type(cls, v: str) -> str:
        """Only allow image types."""
        if v.lower() not in ALLOWED_IMAGE_TYPES:
            raise ValueError(
                f"Unsupported image type: {v}. Allowed: {sorted(ALLOWED_IMAGE_TYPES)}"
            )
        return v.lower()

    @classmethod
    def from_bytes(
        cls,
        data: bytes,
        mime_type: Optional[str] = None,
        filename: Optional[str] = None,
    ) -> "ImageAttachment":
        """
        Build an attachment, sniffing the media type when not supplied.

        Raises:
            ValueError: If the bytes are not a readable image
        """
        if not mime_type:
            try:
                with Image.open(BytesIO(data)) as img:
                    mime_type = Image.MIME.get(img.format or "")
            except UnidentifiedImageError as e:
                raise ValueError(f"Could not read image: {e}") from e
            if not mime_type:
                raise ValueError("Could not determine image type")
        return cls(data=data, mime_type=mime_type, filename=filename)


class ChatTurn(BaseModel):
    """
    One message in the conversation.

    Frozen: a turn is never edited after it is appended.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: uuid4().hex)
    role: TurnRole
    text: str = ""
    image: Optional[ImageAttachment] = None
    transactions: tuple[ExtractedTransaction, ...] = ()

    @classmethod
    def user(cls, text: str, image: Optional[ImageAttachment] = None) -> "ChatTurn":
        return cls(role=TurnRole.USER, text=text, image=image)

    @classmethod
    def assistant(
        cls,
        text: str,
        transactions: tuple[ExtractedTransaction, ...] = (),
    ) -> "ChatTurn":
        return cls(role=TurnRole.ASSISTANT, text=text, transactions=tuple(transactions))


class UserIdentity(BaseModel):
    """Opaque user identifier from the identity provider."""
    model_config = ConfigDict(frozen=True)

    uid: str = Field(..., min_length=1)
    is_anonymous: bool = True
