from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError, field_validator

from dtelecom_stt.domain.transcription import Transcription, transcription_from_message


class ReadyFrame(BaseModel):
    type: Literal["ready"]
    session_id: str | None = None
    remaining_seconds: float | None = None


class TranscriptionFrame(BaseModel):
    type: Literal["transcription"]
    text: str | None = None
    start: float | None = None
    end: float | None = None
    confidence: float | None = None
    is_final: bool | None = None

    @field_validator("text", mode="before")
    @classmethod
    def _text_as_str(cls, value):
        if value is None or isinstance(value, str):
            return value
        return str(value)

    def to_transcription(self) -> Transcription:
        return transcription_from_message(self.model_dump(exclude={"type"}))


class SessionExpiringFrame(BaseModel):
    type: Literal["session_expiring"]
    session_id: str | None = None
    remaining_seconds: float | None = None
    minutes: int | None = None


class SessionExtendedFrame(BaseModel):
    type: Literal["session_extended"]
    session_id: str | None = None
    remaining_seconds: float | None = None


class SessionExpiredFrame(BaseModel):
    type: Literal["session_expired"]
    session_id: str | None = None


class ErrorFrame(BaseModel):
    type: Literal["error"]
    message: str | None = None

    def describe(self) -> str:
        return self.message if self.message is not None else self.model_dump_json()


InboundFrame = Annotated[
    Union[
        ReadyFrame,
        TranscriptionFrame,
        SessionExpiringFrame,
        SessionExtendedFrame,
        SessionExpiredFrame,
        ErrorFrame,
    ],
    Field(discriminator="type"),
]

_adapter: TypeAdapter[InboundFrame] = TypeAdapter(InboundFrame)


def parse_frame(raw: str | bytes) -> InboundFrame | None:
    """Decode one inbound text frame.

    Returns None for anything that is not a JSON object with a known
    ``type``; callers skip such frames so newer servers can add kinds
    without breaking older clients.
    """
    try:
        return _adapter.validate_json(raw)
    except ValidationError:
        return None


class ConfigFrame(BaseModel):
    type: Literal["config"] = "config"
    language: str
    session_key: str
