import os

import pytest

import dtelecom_stt.factory as factory
from dtelecom_stt.__main__ import (
    _apply_overrides,
    _load_env_file,
    _run_pricing,
    _run_transcribe,
    build_parser,
)
from dtelecom_stt.client import STTClient
from dtelecom_stt.config import STTConfig
from dtelecom_stt.errors import AudioFormatError

from conftest import FakeConnection, FakeNegotiator, connector_for, generate_sine_wave, pcm_to_wav_bytes


class TestEnvFile:
    def test_loads_missing_vars_only(self, tmp_path, monkeypatch):
        monkeypatch.setenv("DTELECOM_STT_LANGUAGE", "fr")
        monkeypatch.delenv("DTELECOM_STT_MINUTES", raising=False)
        env_file = tmp_path / "env"
        env_file.write_text(
            "# wallet settings\n"
            "DTELECOM_STT_LANGUAGE=de\n"
            "DTELECOM_STT_MINUTES='7'\n"
            "not a setting\n"
            "\n"
        )

        _load_env_file(env_file)

        assert os.environ["DTELECOM_STT_LANGUAGE"] == "fr"
        assert os.environ["DTELECOM_STT_MINUTES"] == "7"

    def test_missing_file_is_ignored(self, tmp_path):
        _load_env_file(tmp_path / "nope")


class TestParser:
    def test_transcribe_options(self):
        args = build_parser().parse_args([
            "-v", "--url", "http://localhost:8080",
            "transcribe", "talk.wav", "-l", "es", "--minutes", "3", "--no-auto-extend",
        ])
        assert args.command == "transcribe"
        assert args.path == "talk.wav"
        assert args.verbose
        assert args.url == "http://localhost:8080"
        assert args.language == "es"
        assert args.minutes == 3
        assert args.no_auto_extend

    def test_stream_device(self):
        args = build_parser().parse_args(["stream", "--device", "USB"])
        assert args.device == "USB"
        assert not args.no_auto_extend

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_overrides(self):
        args = build_parser().parse_args([
            "--url", "http://localhost:8080", "stream", "--language", "it", "--no-auto-extend",
            "--device", "3",
        ])
        config = _apply_overrides(STTConfig(), args)
        assert config.url == "http://localhost:8080"
        assert config.language == "it"
        assert config.auto_extend is False
        assert config.capture_device == "3"
        assert config.minutes == 5

    def test_no_overrides_keeps_config(self):
        args = build_parser().parse_args(["pricing"])
        config = _apply_overrides(STTConfig(language="nl"), args)
        assert config.language == "nl"


@pytest.mark.asyncio
class TestCommands:
    async def test_transcribe_prints_transcripts(self, tmp_path, monkeypatch, capsys):
        path = tmp_path / "talk.wav"
        path.write_bytes(pcm_to_wav_bytes(generate_sine_wave(duration_ms=100)))
        connection = FakeConnection(frames=[
            {"type": "ready", "remaining_seconds": 300},
            {"type": "transcription", "text": "good morning", "is_final": True, "start": 0.5},
            {"type": "transcription", "text": "no offset", "is_final": True},
        ])
        negotiator = FakeNegotiator()
        client = STTClient(
            negotiator,
            connector=connector_for(connection),
            chunk_ms=50,
            trailing_silence_seconds=0.05,
            drain_timeout=0.1,
        )
        monkeypatch.setattr(factory, "create_client", lambda config: client)

        args = build_parser().parse_args(["transcribe", str(path), "-l", "en"])
        code = await _run_transcribe(args, STTConfig())

        out = capsys.readouterr().out
        assert code == 0
        assert "Pricing: $0.01/min (USDC)" in out
        assert "  [0.5s] good morning" in out
        assert "  [?] no offset" in out
        assert out.rstrip().endswith("Done.")
        assert negotiator.closed
        assert connection.closed

    async def test_transcribe_rejects_bad_file_before_paying(self, tmp_path, monkeypatch):
        path = tmp_path / "stereo.wav"
        path.write_bytes(pcm_to_wav_bytes(generate_sine_wave() * 2, channels=2))
        negotiator = FakeNegotiator()
        monkeypatch.setattr(
            factory, "create_client",
            lambda config: STTClient(negotiator, connector=connector_for(FakeConnection())),
        )

        args = build_parser().parse_args(["transcribe", str(path)])
        with pytest.raises(AudioFormatError, match="Expected mono"):
            await _run_transcribe(args, STTConfig())
        assert negotiator.create_calls == []

    async def test_pricing(self, monkeypatch, capsys):
        negotiator = FakeNegotiator()
        monkeypatch.setattr(factory, "create_lookup_negotiator", lambda config: negotiator)

        code = await _run_pricing(build_parser().parse_args(["pricing"]), STTConfig())

        out = capsys.readouterr().out
        assert code == 0
        assert "Price:    $0.01/min (USDC on base)" in out
        assert "Minutes:  1-120" in out
        assert negotiator.closed
