from dataclasses import dataclass


@dataclass(frozen=True)
class SessionDescriptor:
    session_id: str
    session_key: str
    ws_url: str
    remaining_seconds: int
    minutes: int
    price_usd: str

    @property
    def short_id(self) -> str:
        return self.session_id[:8]


@dataclass(frozen=True)
class ExtensionResult:
    remaining_seconds: int
    minutes_added: int
    price_usd: str | None = None


@dataclass(frozen=True)
class PricingInfo:
    price_per_minute_usd: float
    min_minutes: int
    max_minutes: int
    min_price_usd: float
    currency: str
    network: str
