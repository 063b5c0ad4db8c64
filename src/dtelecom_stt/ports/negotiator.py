from typing import Protocol

from dtelecom_stt.domain.session import ExtensionResult, SessionDescriptor


class SessionNegotiatorPort(Protocol):
    async def create_session(self, minutes: int, language: str) -> SessionDescriptor: ...
    async def extend_session(self, session_id: str, minutes: int = 5) -> ExtensionResult: ...
