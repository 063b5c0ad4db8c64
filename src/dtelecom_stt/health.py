import logging
from dataclasses import dataclass

from dtelecom_stt.adapters.http_negotiator import HttpSessionNegotiator
from dtelecom_stt.config import STTConfig
from dtelecom_stt.errors import STTError

logger = logging.getLogger(__name__)

CRITICAL_CHECKS = {"private_key", "server_health", "audio_device"}


@dataclass
class HealthCheckResult:
    name: str
    passed: bool
    detail: str


async def run_startup_checks(
    config: STTConfig,
    negotiator: HttpSessionNegotiator,
    check_audio: bool = False,
) -> list[HealthCheckResult]:
    results = [
        _check_private_key(config),
        await _check_server_health(negotiator),
        await _check_pricing(negotiator),
    ]
    if check_audio:
        results.append(_check_audio_device(config))

    passed = sum(1 for r in results if r.passed)
    logger.info("Health check: %d/%d passed", passed, len(results))
    for result in results:
        level = logging.INFO if result.passed else logging.WARNING
        symbol = "OK" if result.passed else "FAIL"
        logger.log(level, "  [%s] %s: %s", symbol, result.name, result.detail)

    return results


def has_critical_failures(results: list[HealthCheckResult]) -> bool:
    return any(not r.passed and r.name in CRITICAL_CHECKS for r in results)


def _check_private_key(config: STTConfig) -> HealthCheckResult:
    name = "private_key"
    key = config.resolve_private_key()
    if not key:
        where = config.private_key_file or "DTELECOM_STT_PRIVATE_KEY / DTELECOM_PRIVATE_KEY"
        return HealthCheckResult(name=name, passed=False, detail=f"Missing ({where})")
    # 32-byte hex key with 0x prefix
    if len(key) != 66:
        return HealthCheckResult(name=name, passed=False, detail=f"Expected 64 hex digits, got {len(key) - 2}")
    return HealthCheckResult(name=name, passed=True, detail="Loaded")


async def _check_server_health(negotiator: HttpSessionNegotiator) -> HealthCheckResult:
    name = "server_health"
    try:
        status = await negotiator.health()
    except STTError as exc:
        return HealthCheckResult(name=name, passed=False, detail=f"Unreachable: {exc}")
    return HealthCheckResult(name=name, passed=True, detail=f"{negotiator.url} {status}")


async def _check_pricing(negotiator: HttpSessionNegotiator) -> HealthCheckResult:
    name = "pricing"
    try:
        info = await negotiator.pricing()
    except STTError as exc:
        return HealthCheckResult(name=name, passed=False, detail=str(exc))
    return HealthCheckResult(
        name=name,
        passed=True,
        detail=(
            f"${info.price_per_minute_usd}/min ({info.currency} on {info.network}), "
            f"{info.min_minutes}-{info.max_minutes} min, from ${info.min_price_usd}"
        ),
    )


def _check_audio_device(config: STTConfig) -> HealthCheckResult:
    name = "audio_device"
    try:
        import sounddevice as sd

        from dtelecom_stt.adapters.sounddevice_audio import find_input_device

        if config.capture_device and not config.capture_device.isdigit():
            match = find_input_device(config.capture_device)
            if match is not None:
                return HealthCheckResult(name=name, passed=True, detail=f"Device '{match[1]}' found")
        default = sd.query_devices(kind="input")
        return HealthCheckResult(name=name, passed=True, detail=f"Default input: {default['name']}")
    except Exception as exc:
        return HealthCheckResult(name=name, passed=False, detail=str(exc))
