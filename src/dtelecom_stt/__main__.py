import argparse
import asyncio
import logging
import os
import signal
import sys
from pathlib import Path

from dtelecom_stt.config import STTConfig
from dtelecom_stt.errors import STTError
from dtelecom_stt.log_format import ColoredFormatter

ENV_FILE_PATH = Path.home() / ".config" / "dtelecom-stt" / "env"


def _load_env_file(path: Path = ENV_FILE_PATH) -> None:
    if not path.exists():
        return
    with open(path) as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            if "=" not in line:
                continue
            key, _, value = line.partition("=")
            key = key.strip()
            value = value.strip().strip("'\"")
            if key not in os.environ:
                os.environ[key] = value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dtelecom-stt",
        description="Real-time speech-to-text with pay-per-minute sessions",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")
    parser.add_argument("--url", help="Server base URL")

    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_session_options(sub: argparse.ArgumentParser) -> None:
        sub.add_argument("--language", "-l", help="Spoken language code (default: en)")
        sub.add_argument("--minutes", "-m", type=int, help="Minutes to buy up front")
        sub.add_argument(
            "--no-auto-extend", action="store_true",
            help="Do not buy more time when the session is about to expire",
        )

    transcribe_parser = subparsers.add_parser("transcribe", help="Transcribe a PCM16 16kHz mono WAV file")
    transcribe_parser.add_argument("path", help="WAV file to transcribe")
    add_session_options(transcribe_parser)

    stream_parser = subparsers.add_parser("stream", help="Transcribe the microphone until Ctrl+C")
    stream_parser.add_argument("--device", help="Input device name or index")
    add_session_options(stream_parser)

    subparsers.add_parser("pricing", help="Show current pricing")
    subparsers.add_parser("health", help="Check configuration and server reachability")

    return parser


def _configure_logging(verbose: bool, log_file: str) -> None:
    handler = logging.StreamHandler()
    handler.setFormatter(ColoredFormatter(datefmt="%H:%M:%S"))
    handlers: list[logging.Handler] = [handler]
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s %(name)s %(levelname)s %(message)s")
        )
        handlers.append(file_handler)

    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO, handlers=handlers)
    for noisy in ("websockets", "httpcore", "httpx"):
        logging.getLogger(noisy).setLevel(logging.INFO if verbose else logging.WARNING)


def _apply_overrides(config: STTConfig, args: argparse.Namespace) -> STTConfig:
    if args.url:
        config.url = args.url
    if getattr(args, "language", None):
        config.language = args.language
    if getattr(args, "minutes", None):
        config.minutes = args.minutes
    if getattr(args, "no_auto_extend", False):
        config.auto_extend = False
    if getattr(args, "device", None):
        config.capture_device = args.device
    return config


def main() -> None:
    _load_env_file()
    args = build_parser().parse_args()

    config = _apply_overrides(STTConfig(), args)
    _configure_logging(args.verbose, config.log_file)

    commands = {
        "transcribe": _run_transcribe,
        "stream": _run_stream,
        "pricing": _run_pricing,
        "health": _run_health,
    }
    try:
        code = asyncio.run(commands[args.command](args, config))
    except STTError as exc:
        logging.error("%s: %s", type(exc).__name__, exc)
        sys.exit(1)
    sys.exit(code)


async def _run_transcribe(args: argparse.Namespace, config: STTConfig) -> int:
    from dtelecom_stt.audio import load_wav
    from dtelecom_stt.factory import create_client

    # fail on a bad file before paying for a session
    load_wav(args.path)

    async with create_client(config) as client:
        info = await client.pricing()
        print(f"Pricing: ${info.price_per_minute_usd}/min ({info.currency})")

        session = client.session(
            minutes=config.minutes, language=config.language, auto_extend=config.auto_extend,
        )
        async with session as stream:
            async for t in stream.transcribe_file(args.path):
                start = f"{t.start:.1f}s" if t.start is not None else "?"
                print(f"  [{start}] {t.text}")

    print("Done.")
    return 0


async def _run_stream(args: argparse.Namespace, config: STTConfig) -> int:
    from dtelecom_stt.adapters.sounddevice_audio import SounddeviceCapture
    from dtelecom_stt.domain.transcription import Transcription
    from dtelecom_stt.factory import create_client
    from dtelecom_stt.health import has_critical_failures, run_startup_checks

    async with create_client(config) as client:
        results = await run_startup_checks(config, client.negotiator, check_audio=True)
        if has_critical_failures(results):
            logging.error("Critical health check failures, aborting")
            return 1

        capture = SounddeviceCapture(device=config.capture_device, chunk_ms=config.chunk_ms)
        stream = await client.session(
            minutes=config.minutes, language=config.language, auto_extend=config.auto_extend,
        ).open()

        def print_final(t: Transcription) -> None:
            if t.is_final:
                print(f"  > {t.text}")

        stream.on_transcription(print_final)

        shutdown_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, shutdown_event.set)

        async def drain() -> None:
            # callbacks print; this only waits for the stream to end
            async for _ in stream.transcriptions():
                pass

        async def pump() -> None:
            async for chunk in capture.chunks():
                if stream.closed:
                    break
                await stream.send_audio(chunk)

        print("Speak into your microphone. Press Ctrl+C to stop.")
        await capture.start()
        tasks = [
            asyncio.create_task(pump()),
            asyncio.create_task(drain()),
            asyncio.create_task(shutdown_event.wait()),
        ]
        try:
            await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        finally:
            print("Stopping...")
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            await capture.stop()
            await stream.close()

    print("Done.")
    return 0


async def _run_pricing(args: argparse.Namespace, config: STTConfig) -> int:
    from dtelecom_stt.factory import create_lookup_negotiator

    negotiator = create_lookup_negotiator(config)
    try:
        info = await negotiator.pricing()
    finally:
        await negotiator.aclose()
    print(f"Price:    ${info.price_per_minute_usd}/min ({info.currency} on {info.network})")
    print(f"Minutes:  {info.min_minutes}-{info.max_minutes}")
    print(f"Minimum:  ${info.min_price_usd}")
    return 0


async def _run_health(args: argparse.Namespace, config: STTConfig) -> int:
    from dtelecom_stt.factory import create_lookup_negotiator
    from dtelecom_stt.health import has_critical_failures, run_startup_checks

    negotiator = create_lookup_negotiator(config)
    try:
        results = await run_startup_checks(config, negotiator)
    finally:
        await negotiator.aclose()
    return 1 if has_critical_failures(results) else 0


if __name__ == "__main__":
    main()
