from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class Transcription:
    """One unit of recognized speech.

    ``start`` and ``end`` are offsets in seconds from the start of the
    stream. ``is_final`` is False for provisional partial results.
    """

    text: str
    is_final: bool = True
    start: float | None = None
    end: float | None = None
    confidence: float | None = None


def transcription_from_message(msg: dict[str, Any]) -> Transcription:
    text = msg.get("text")
    is_final = msg.get("is_final")
    return Transcription(
        text=text if text is not None else "",
        is_final=is_final if is_final is not None else True,
        start=msg.get("start"),
        end=msg.get("end"),
        confidence=msg.get("confidence"),
    )
