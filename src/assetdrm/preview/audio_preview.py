"""Audio previews: a short mono excerpt with audible marker beeps.

The pipeline is a straight line of stages, each feeding the next:
decode -> truncate -> mix down -> add beeps -> encode WAV.
"""

from __future__ import annotations

import io
import logging
import tempfile
import wave
from dataclasses import dataclass
from pathlib import Path

import numpy as np

from ..config import PreviewSettings
from ..errors import UnsupportedFormat
from ..utils import ffmpeg
from ..utils.media_io import MediaFile, MediaTypeTag, sniff_mime
from .artifacts import PreviewArtifact, preview_filename

LOGGER = logging.getLogger(__name__)

RAMP_SECONDS = 0.01


@dataclass(frozen=True)
class PcmAudio:
    """Decoded audio as float32 samples in [-1, 1], shape (frames, channels)."""

    samples: np.ndarray
    sample_rate: int

    @property
    def frames(self) -> int:
        return int(self.samples.shape[0])

    @property
    def channels(self) -> int:
        return int(self.samples.shape[1]) if self.samples.ndim > 1 else 1

    @property
    def duration(self) -> float:
        return self.frames / self.sample_rate if self.sample_rate else 0.0


def decode_wav(data: bytes) -> PcmAudio:
    """Decode integer PCM WAV (8/16/24/32-bit) with the standard library reader."""
    try:
        with wave.open(io.BytesIO(data), "rb") as wf:
            channels = wf.getnchannels()
            width = wf.getsampwidth()
            rate = wf.getframerate()
            raw = wf.readframes(wf.getnframes())
    except (wave.Error, EOFError) as e:
        raise UnsupportedFormat(f"Cannot decode WAV: {e}") from e

    if width == 1:
        samples = (np.frombuffer(raw, dtype=np.uint8).astype(np.float32) - 128.0) / 128.0
    elif width == 2:
        samples = np.frombuffer(raw, dtype="<i2").astype(np.float32) / 32768.0
    elif width == 3:
        b = np.frombuffer(raw, dtype=np.uint8).reshape(-1, 3).astype(np.int32)
        ints = b[:, 0] | (b[:, 1] << 8) | (b[:, 2] << 16)
        ints = np.where(ints & 0x800000, ints - 0x1000000, ints)
        samples = ints.astype(np.float32) / 8388608.0
    elif width == 4:
        samples = np.frombuffer(raw, dtype="<i4").astype(np.float32) / 2147483648.0
    else:
        raise UnsupportedFormat(f"Unsupported WAV sample width: {width}")

    usable = (samples.size // channels) * channels
    return PcmAudio(samples=samples[:usable].reshape(-1, channels), sample_rate=rate)


def decode_with_ffmpeg(media: MediaFile, settings: PreviewSettings, max_seconds: float) -> PcmAudio:
    """Decode any container ffmpeg understands into 16-bit PCM.

    Only the first `max_seconds` are decoded since nothing later survives
    truncation anyway.
    """
    ffmpeg.ensure_tools(settings.ffmpeg_binary, settings.ffprobe_binary)
    with tempfile.TemporaryDirectory(prefix="assetdrm-audio-") as tmp:
        src = Path(tmp) / f"source{media.suffix or '.bin'}"
        src.write_bytes(media.data)
        info = ffmpeg.probe(src, settings.ffprobe_binary)
        audio = info.get("audio")
        if not audio:
            raise UnsupportedFormat("No audio stream found")
        rate = audio.get("sample_rate") or 44100
        channels = audio.get("channels") or 2
        raw = ffmpeg.run([
            settings.ffmpeg_binary, "-v", "error", "-i", str(src),
            "-map", "0:a:0",
            "-t", f"{max_seconds:.3f}",
            "-f", "s16le",
            "-acodec", "pcm_s16le",
            "-ar", str(rate),
            "-ac", str(channels),
            "-",
        ])
    samples = np.frombuffer(raw, dtype="<i2").astype(np.float32) / 32768.0
    usable = (samples.size // channels) * channels
    return PcmAudio(samples=samples[:usable].reshape(-1, channels), sample_rate=rate)


def decode_audio(media: MediaFile, settings: PreviewSettings) -> PcmAudio:
    if sniff_mime(media.data, media.filename) == "audio/wav":
        try:
            return decode_wav(media.data)
        except UnsupportedFormat:
            # float or compressed WAV payloads are left to ffmpeg
            if not ffmpeg.tools_available(settings.ffmpeg_binary, settings.ffprobe_binary):
                raise
    return decode_with_ffmpeg(media, settings, settings.audio_max_seconds)


def truncate(audio: PcmAudio, max_seconds: float) -> PcmAudio:
    limit = int(max_seconds * audio.sample_rate)
    if audio.frames <= limit:
        return audio
    return PcmAudio(samples=audio.samples[:limit], sample_rate=audio.sample_rate)


def mix_to_mono(audio: PcmAudio) -> np.ndarray:
    if audio.samples.ndim == 1:
        return audio.samples.astype(np.float32)
    return audio.samples.mean(axis=1).astype(np.float32)


def beep_track(frames: int, sample_rate: int, settings: PreviewSettings) -> np.ndarray:
    """Sine beeps with short linear attack/release, at a fixed interval."""
    track = np.zeros(frames, dtype=np.float32)
    duration = frames / sample_rate
    ramp = RAMP_SECONDS
    start = settings.beep_first
    while start < duration and settings.beep_interval > 0:
        i0 = int(start * sample_rate)
        i1 = min(frames, int((start + settings.beep_duration) * sample_rate))
        if i1 > i0:
            t = np.arange(i1 - i0, dtype=np.float32) / sample_rate
            envelope = np.clip(np.minimum(t / ramp, (settings.beep_duration - t) / ramp), 0.0, 1.0)
            tone = np.sin(2.0 * np.pi * settings.beep_frequency * t)
            track[i0:i1] += (settings.beep_gain * envelope * tone).astype(np.float32)
        start += settings.beep_interval
    return track


def encode_wav(mono: np.ndarray, sample_rate: int) -> bytes:
    clipped = np.clip(mono, -1.0, 1.0)
    ints = np.where(clipped < 0, clipped * 32768.0, clipped * 32767.0).astype("<i2")
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wf:
        wf.setnchannels(1)
        wf.setsampwidth(2)
        wf.setframerate(sample_rate)
        wf.writeframes(ints.tobytes())
    return buf.getvalue()


def generate_audio_preview(
    media: MediaFile,
    settings: PreviewSettings,
    media_type: MediaTypeTag = MediaTypeTag.AUDIO,
) -> PreviewArtifact:
    """Truncated, mono, beep-marked WAV excerpt of an audio file.

    Raises:
        UnsupportedFormat: If the audio cannot be decoded or is empty.
    """
    decoded = decode_audio(media, settings)
    if decoded.frames == 0 or decoded.sample_rate <= 0:
        raise UnsupportedFormat("Audio contains no samples")
    excerpt = truncate(decoded, settings.audio_max_seconds)
    mono = mix_to_mono(excerpt)
    marked = mono + beep_track(mono.shape[0], excerpt.sample_rate, settings)
    data = encode_wav(marked, excerpt.sample_rate)

    LOGGER.info(
        "Audio preview %s: %.2fs/%dch -> %.2fs mono, %d -> %d bytes",
        media.filename, decoded.duration, decoded.channels, excerpt.duration,
        media.size, len(data),
    )
    return PreviewArtifact(
        data=data,
        mime_type="audio/wav",
        filename=preview_filename(media, ".wav"),
        media_type=media_type,
        duration=excerpt.duration,
    )
