import logging
import struct
from dataclasses import dataclass
from pathlib import Path

from dtelecom_stt.errors import AudioFormatError

logger = logging.getLogger(__name__)

SAMPLE_RATE = 16000
SAMPLE_WIDTH = 2
CHANNELS = 1
BYTES_PER_SECOND = SAMPLE_RATE * SAMPLE_WIDTH * CHANNELS

WAVE_FORMAT_PCM = 0x0001
WAVE_FORMAT_EXTENSIBLE = 0xFFFE

MIN_WAV_SIZE = 44
RIFF_HEADER_SIZE = 12
CHUNK_HEADER_SIZE = 8
FMT_MIN_SIZE = 16

FIX_CODEC = "Convert with: ffmpeg -i input.wav -acodec pcm_s16le output.wav"
FIX_RATE = "Resample with: ffmpeg -i input.wav -ar 16000 -ac 1 output.wav"
FIX_CHANNELS = "Convert with: ffmpeg -i input.wav -ac 1 output.wav"


@dataclass(frozen=True)
class WavData:
    pcm_data: bytes
    sample_rate: int
    channels: int
    sample_width: int

    @property
    def duration(self) -> float:
        return len(self.pcm_data) / (self.sample_rate * self.sample_width * self.channels)


def load_wav(path: str | Path) -> WavData:
    """Load a WAV file and check it is PCM16, 16 kHz, mono.

    Chunks are walked from the RIFF header on, so files carrying extra
    chunks (LIST, fact, ...) before or after ``fmt `` are accepted.

    Raises:
        AudioFormatError: the file is missing, unreadable, not a WAV file,
            or not in the one accepted format. The message says how to
            convert it.
    """
    path = Path(path)
    try:
        buf = path.read_bytes()
    except FileNotFoundError:
        raise AudioFormatError(f"File not found: {path}") from None
    except OSError as exc:
        raise AudioFormatError(f"Cannot read file: {path} ({exc.strerror})") from None

    wav = parse_wav(buf)
    logger.debug(
        "Loaded %s: %d bytes, %.2fs",
        path, len(wav.pcm_data), wav.duration,
    )
    return wav


def parse_wav(buf: bytes) -> WavData:
    if len(buf) < MIN_WAV_SIZE:
        raise AudioFormatError("Cannot read WAV file: file too small")
    if buf[0:4] != b"RIFF" or buf[8:12] != b"WAVE":
        raise AudioFormatError("Cannot read WAV file: not a valid WAV")

    fmt_chunk, data_chunk = _find_chunks(buf)
    if fmt_chunk is None:
        raise AudioFormatError("Cannot read WAV file: no fmt chunk")
    if data_chunk is None:
        raise AudioFormatError("Cannot read WAV file: no data chunk")

    audio_format, channels, sample_rate, bits_per_sample = _read_format(fmt_chunk)
    sample_width = bits_per_sample // 8

    if audio_format != WAVE_FORMAT_PCM:
        raise AudioFormatError(f"Expected PCM format (1), got {audio_format}. {FIX_CODEC}")
    if sample_rate != SAMPLE_RATE:
        raise AudioFormatError(f"Expected {SAMPLE_RATE}Hz, got {sample_rate}Hz. {FIX_RATE}")
    if channels != CHANNELS:
        raise AudioFormatError(f"Expected mono, got {channels} channels. {FIX_CHANNELS}")
    if bits_per_sample != SAMPLE_WIDTH * 8:
        raise AudioFormatError(f"Expected 16-bit, got {bits_per_sample}-bit. {FIX_CODEC}")
    if len(data_chunk) % (SAMPLE_WIDTH * CHANNELS):
        raise AudioFormatError(
            f"Cannot read WAV file: data chunk holds {len(data_chunk)} bytes, "
            f"not a whole number of {SAMPLE_WIDTH * 8}-bit samples"
        )

    return WavData(
        pcm_data=bytes(data_chunk),
        sample_rate=sample_rate,
        channels=channels,
        sample_width=sample_width,
    )


def silence(duration_seconds: float) -> bytes:
    return bytes(int(BYTES_PER_SECOND * duration_seconds))


def _find_chunks(buf: bytes) -> tuple[memoryview | None, memoryview | None]:
    view = memoryview(buf)
    fmt_chunk = None
    data_chunk = None
    offset = RIFF_HEADER_SIZE

    while offset + CHUNK_HEADER_SIZE <= len(buf):
        chunk_id = bytes(view[offset:offset + 4])
        (chunk_size,) = struct.unpack_from("<I", buf, offset + 4)
        body_start = offset + CHUNK_HEADER_SIZE
        body_end = body_start + chunk_size

        if body_end > len(buf):
            raise AudioFormatError(
                f"Cannot read WAV file: {chunk_id.decode('ascii', 'replace')!r} chunk "
                f"declares {chunk_size} bytes but only {len(buf) - body_start} remain"
            )

        if chunk_id == b"fmt " and fmt_chunk is None:
            fmt_chunk = view[body_start:body_end]
        elif chunk_id == b"data" and data_chunk is None:
            data_chunk = view[body_start:body_end]

        if fmt_chunk is not None and data_chunk is not None:
            break
        # chunk bodies are padded to an even length
        offset = body_end + (chunk_size & 1)

    return fmt_chunk, data_chunk


def _read_format(fmt_chunk: memoryview) -> tuple[int, int, int, int]:
    if len(fmt_chunk) < FMT_MIN_SIZE:
        raise AudioFormatError(
            f"Cannot read WAV file: fmt chunk is {len(fmt_chunk)} bytes, expected at least {FMT_MIN_SIZE}"
        )
    audio_format, channels, sample_rate = struct.unpack_from("<HHI", fmt_chunk, 0)
    (bits_per_sample,) = struct.unpack_from("<H", fmt_chunk, 14)

    # WAVE_FORMAT_EXTENSIBLE keeps the real codec in the first two bytes of the sub-format GUID
    if audio_format == WAVE_FORMAT_EXTENSIBLE and len(fmt_chunk) >= 26:
        (audio_format,) = struct.unpack_from("<H", fmt_chunk, 24)

    return audio_format, channels, sample_rate, bits_per_sample
