"""
Notification cues synthesised from oscillators instead of recorded assets.

Each cue is rendered into a mono float32 buffer in ``[-1, 1]`` and handed to
an :class:`AudioOutput`. Outputs start ``suspended`` and are resumed right
before the first buffer is scheduled.
"""
import logging
import wave
from pathlib import Path
from typing import Optional, Union

import numpy as np

from marketplace.db.models import NotificationSound

logger = logging.getLogger(__name__)

SAMPLE_RATE = 44100


def _timeline(duration: float, sample_rate: int) -> np.ndarray:
    return np.arange(int(round(duration * sample_rate))) / sample_rate


def _exponential_ramp(t: np.ndarray, start: float, end: float, t0: float, t1: float) -> np.ndarray:
    """Hold ``start`` before t0, ramp exponentially to ``end`` at t1, hold after."""
    progress = np.clip((t - t0) / (t1 - t0), 0.0, 1.0)
    return start * (end / start) ** progress


def _phase(frequency: np.ndarray, sample_rate: int) -> np.ndarray:
    return 2 * np.pi * np.cumsum(frequency) / sample_rate


def _sine(frequency: np.ndarray, sample_rate: int) -> np.ndarray:
    return np.sin(_phase(frequency, sample_rate))


def _square(frequency: np.ndarray, sample_rate: int) -> np.ndarray:
    return np.where(np.sin(_phase(frequency, sample_rate)) >= 0, 1.0, -1.0)


def _default_cue(sample_rate: int) -> np.ndarray:
    # single A5 ding
    t = _timeline(0.5, sample_rate)
    frequency = np.full_like(t, 880.0)
    gain = _exponential_ramp(t, 0.1, 0.001, 0.0, 0.5)
    return _sine(frequency, sample_rate) * gain


def _chime_cue(sample_rate: int) -> np.ndarray:
    t = _timeline(0.5, sample_rate)
    frequency = _exponential_ramp(t, 600.0, 800.0, 0.0, 0.1)
    gain = _exponential_ramp(t, 0.5, 0.01, 0.0, 0.5)
    return _sine(frequency, sample_rate) * gain


def _alert_cue(sample_rate: int) -> np.ndarray:
    t = _timeline(0.35, sample_rate)
    frequency = np.full_like(t, 800.0)
    beeps = ((t >= 0.0) & (t < 0.1)) | ((t >= 0.2) & (t < 0.3))
    gain = np.where(beeps, 0.1, 0.0)
    return _square(frequency, sample_rate) * gain


_RENDERERS = {
    NotificationSound.DEFAULT: _default_cue,
    NotificationSound.CHIME: _chime_cue,
    NotificationSound.ALERT: _alert_cue,
}


def render_cue(kind: Union[str, NotificationSound], sample_rate: int = SAMPLE_RATE) -> Optional[np.ndarray]:
    """Render a cue. ``none`` renders nothing; unknown keys fall back to ``default``."""
    try:
        sound = NotificationSound(kind)
    except ValueError:
        sound = NotificationSound.DEFAULT
    if sound == NotificationSound.NONE:
        return None
    return _RENDERERS[sound](sample_rate).astype(np.float32)


class AudioOutput:
    """Sink for rendered cues, modelled on a browser audio context."""

    def __init__(self, sample_rate: int = SAMPLE_RATE):
        self.sample_rate = sample_rate
        self.state = "suspended"

    def resume(self):
        self.state = "running"

    def play(self, samples: np.ndarray):
        if self.state != "running":
            raise RuntimeError("Audio output is suspended")
        self._write(samples)

    def _write(self, samples: np.ndarray):
        raise NotImplementedError


class WaveFileOutput(AudioOutput):
    """Writes every cue as a 16-bit mono WAV file into ``directory``."""

    def __init__(self, directory: Union[str, Path], sample_rate: int = SAMPLE_RATE):
        super().__init__(sample_rate)
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self.written = 0

    def _write(self, samples: np.ndarray):
        pcm = (np.clip(samples, -1.0, 1.0) * 32767).astype("<i2")
        path = self.directory / f"cue-{self.written:04d}.wav"
        with wave.open(str(path), "wb") as wav:
            wav.setnchannels(1)
            wav.setsampwidth(2)
            wav.setframerate(self.sample_rate)
            wav.writeframes(pcm.tobytes())
        self.written += 1
        logger.debug(f"Wrote cue to {path}")


def play_cue(kind: Union[str, NotificationSound], output: Optional[AudioOutput]):
    if output is None:
        return
    samples = render_cue(kind, output.sample_rate)
    if samples is None:
        return
    if output.state == "suspended":
        output.resume()
    output.play(samples)
