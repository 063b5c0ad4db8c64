from enum import Enum, auto

from dtelecom_stt.errors import STTError


class StreamState(Enum):
    HANDSHAKING = auto()
    ACTIVE = auto()
    EXTENDING = auto()
    CLOSED = auto()

    @property
    def accepts_audio(self) -> bool:
        return self in (StreamState.ACTIVE, StreamState.EXTENDING)


VALID_TRANSITIONS: dict[StreamState, set[StreamState]] = {
    StreamState.HANDSHAKING: {StreamState.ACTIVE, StreamState.CLOSED},
    StreamState.ACTIVE: {StreamState.EXTENDING, StreamState.CLOSED},
    StreamState.EXTENDING: {StreamState.ACTIVE, StreamState.CLOSED},
    StreamState.CLOSED: set(),
}


class InvalidTransitionError(STTError):
    pass


def validate_transition(current: StreamState, target: StreamState) -> None:
    if target not in VALID_TRANSITIONS.get(current, set()):
        raise InvalidTransitionError(f"Cannot transition from {current.name} to {target.name}")
