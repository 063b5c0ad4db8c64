import os

from pydantic_settings import BaseSettings, SettingsConfigDict


class STTConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="DTELECOM_STT_")

    url: str = "https://x402stt.dtelecom.org"
    private_key: str = ""
    private_key_file: str = ""

    language: str = "en"
    minutes: int = 5
    auto_extend: bool = True
    extend_minutes: int = 5

    handshake_timeout: float = 30.0
    http_timeout: float = 10.0
    drain_timeout: float = 5.0

    chunk_ms: int = 20
    trailing_silence_seconds: float = 2.0

    capture_device: str = ""
    log_file: str = ""

    def read_secret(self, path: str) -> str:
        if not path:
            return ""
        try:
            with open(path) as f:
                return f.read().strip()
        except FileNotFoundError:
            return ""

    def resolve_private_key(self) -> str:
        key = (
            self.private_key
            or self.read_secret(self.private_key_file)
            or os.environ.get("DTELECOM_PRIVATE_KEY", "")
        )
        if key and not key.startswith("0x"):
            key = f"0x{key}"
        return key
