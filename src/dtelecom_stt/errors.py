class STTError(Exception):
    """Base class for every error raised by the client."""


class PaymentError(STTError):
    """The server rejected the payment for a session or an extension."""


class SessionExpiredError(STTError):
    """The purchased session time ran out."""


class STTConnectionError(STTError):
    """The server could not be reached or the connection failed."""


class AudioFormatError(STTError):
    """Input audio is not 16-bit signed PCM, 16 kHz, mono."""


class StreamClosedError(STTError):
    """Audio was sent on a stream that is already closed."""
