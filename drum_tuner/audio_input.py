"""
Microphone front-end: captures audio, filters it, and feeds frames to an engine.

An AudioSession owns one sounddevice input stream. Incoming blocks are
band-passed, collected into overlapping analysis frames, and handed to
TuningEngine.process_audio(). The filter cut-offs follow the band the engine
requests for the current target.
"""

import threading
from typing import Callable

import numpy as np

from .constants import BUFFER_SIZE, SAMPLE_RATE
from .engine import FrameResult, TuningEngine
from .errors import NoInputDeviceError
from .filters import BandPassFilter
from .logging_utils import log_event
from .pitch_estimator import recommended_frame_size


def list_input_devices() -> list[tuple[int, str]]:
    """Return (index, name) for every device with input channels."""
    import sounddevice as sd

    devices = sd.query_devices()
    return [
        (i, device["name"])
        for i, device in enumerate(devices)
        if device["max_input_channels"] > 0
    ]


class AudioSession:
    """
    Streams audio from an input device into a TuningEngine.

    Frames are timestamped from the number of samples consumed, so the
    engine's gates run on audio time rather than wall time.
    """

    def __init__(
        self,
        engine: TuningEngine,
        sample_rate: int = SAMPLE_RATE,
        frame_size: int | None = None,
        hop_size: int = BUFFER_SIZE,
        device: int | str | None = None,
        gain: float = 1.0,
        on_frame: Callable[[FrameResult], None] | None = None,
    ):
        """
        Initialize session.

        Args:
            engine: Engine that receives every analysis frame
            sample_rate: Capture sample rate
            frame_size: Analysis frame length (default: long enough for the lowest pitch)
            hop_size: Samples between successive frames, also the stream block size
            device: sounddevice input device (None for the default)
            gain: Linear gain applied before filtering
            on_frame: Called with each FrameResult
        """
        self.engine = engine
        self.sample_rate = sample_rate
        self.frame_size = frame_size or recommended_frame_size(engine.settings.min_hz, sample_rate)
        self.hop_size = min(hop_size, self.frame_size)
        self.device = device
        self.gain = gain
        self.on_frame = on_frame

        band = engine.requested_band
        self.filter = BandPassFilter(band.low_hz, band.high_hz, sample_rate)

        self._frame = np.zeros(self.frame_size, dtype=np.float64)
        self._filled = 0
        self._since_last_frame = 0
        self._samples_consumed = 0
        self._lock = threading.Lock()
        self._stream = None

        self.last_rms = 0.0
        self.last_peak = 0.0
        self.last_result: FrameResult | None = None

    @property
    def running(self) -> bool:
        return self._stream is not None

    @property
    def clock_ms(self) -> float:
        """Audio time of the most recent sample, in milliseconds."""
        return self._samples_consumed * 1000.0 / self.sample_rate

    def start(self):
        """
        Open the input stream and start feeding the engine.

        Raises:
            NoInputDeviceError: If no usable input device is available
        """
        import sounddevice as sd

        if self._stream is not None:
            return
        try:
            sd.query_devices(self.device, kind="input")
        except (ValueError, sd.PortAudioError) as e:
            raise NoInputDeviceError(f"No audio input device available: {e}") from e

        self.reset()
        self._stream = sd.InputStream(
            device=self.device,
            samplerate=self.sample_rate,
            blocksize=self.hop_size,
            channels=1,
            dtype=np.float32,
            callback=self._audio_callback,
        )
        self._stream.start()
        log_event("INFO", "Audio", "Input stream started", device=self.device,
                  rate=self.sample_rate, frame=self.frame_size, hop=self.hop_size)

    def stop(self):
        """Close the input stream."""
        if self._stream is not None:
            self._stream.stop()
            self._stream.close()
            self._stream = None
            log_event("INFO", "Audio", "Input stream stopped")

    def reset(self):
        """Clear the frame accumulator, filter state and audio clock."""
        with self._lock:
            self._frame[:] = 0.0
            self._filled = 0
            self._since_last_frame = 0
            self._samples_consumed = 0
            self.filter.reset()

    def _audio_callback(self, indata, frames, time, status):
        if status:
            log_event("WARNING", "Audio", "Stream status", status=status)
        self.feed(indata[:, 0])

    def feed(self, block: np.ndarray) -> list[FrameResult]:
        """
        Push one block of samples through the filter and accumulator.

        Returns:
            FrameResults for every frame completed by this block
        """
        raw = np.asarray(block, dtype=np.float64).ravel()
        if raw.size == 0:
            return []

        results = []
        with self._lock:
            self.last_rms = float(np.sqrt(np.mean(raw**2)))
            self.last_peak = float(np.max(np.abs(raw)))
            filtered = self.filter.process(raw * self.gain)

            pos = 0
            while pos < filtered.size:
                take = min(filtered.size - pos, self.hop_size - self._since_last_frame)
                chunk = filtered[pos : pos + take]
                self._frame = np.roll(self._frame, -take)
                self._frame[-take:] = chunk
                self._filled = min(self.frame_size, self._filled + take)
                self._since_last_frame += take
                self._samples_consumed += take
                pos += take

                if self._since_last_frame >= self.hop_size and self._filled >= self.frame_size:
                    self._since_last_frame = 0
                    results.append(self._analyse())
                elif self._since_last_frame >= self.hop_size:
                    self._since_last_frame = 0
        return results

    def _analyse(self) -> FrameResult:
        result = self.engine.process_audio(self._frame.copy(), self.sample_rate, self.clock_ms)
        if result.band is not None:
            self.filter.set_band(result.band.low_hz, result.band.high_hz)
        self.last_result = result
        if self.on_frame is not None:
            self.on_frame(result)
        return result
