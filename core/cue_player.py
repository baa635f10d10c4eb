"""
Audio cue playback.

An AudioResource holds one decoded sound file as float32 frames with a read
cursor. A CuePlayer renders its resource to the default output device each
time ``play()`` is called and reports the end of rendering exactly once per
call through its ``on_complete`` callback.
"""
import logging
import threading
from functools import partial
from pathlib import Path
from typing import Callable, Dict, Optional

import numpy as np
from pydub import AudioSegment

logger = logging.getLogger(__name__)


class AudioLoadError(Exception):
    """Raised when a cue file cannot be opened or decoded."""


class UnsupportedAudioFormat(AudioLoadError):
    """Raised when a cue file has an extension we have no decoder for."""


DECODERS: Dict[str, Callable[[str], AudioSegment]] = {
    ".wav": AudioSegment.from_wav,
    ".flac": partial(AudioSegment.from_file, format="flac"),
    ".mp3": AudioSegment.from_mp3,
}


class AudioResource:
    """Seekable in-memory audio stream."""

    def __init__(self, frames: np.ndarray, sample_rate: int, path: Optional[Path] = None) -> None:
        if frames.ndim == 1:
            frames = frames.reshape(-1, 1)
        self.frames = frames.astype(np.float32, copy=False)
        self.sample_rate = sample_rate
        self.path = path
        self.position = 0

    @property
    def channels(self) -> int:
        return self.frames.shape[1]

    def __len__(self) -> int:
        return self.frames.shape[0]

    def seek(self, position: int) -> None:
        if not 0 <= position <= len(self):
            raise ValueError(f"seek position {position} outside 0..{len(self)}")
        self.position = position

    def read(self, count: int) -> np.ndarray:
        """Return up to *count* frames from the cursor and advance it."""
        start = self.position
        end = min(start + count, len(self))
        self.position = end
        return self.frames[start:end]

    @classmethod
    def from_segment(cls, segment: AudioSegment, path: Optional[Path] = None) -> "AudioResource":
        samples = np.array(segment.get_array_of_samples())
        full_scale = float(1 << (8 * segment.sample_width - 1))
        frames = (samples.astype(np.float32) / full_scale).reshape(-1, segment.channels)
        return cls(frames, segment.frame_rate, path)


def load_audio_resource(path: str | Path) -> AudioResource:
    """
    Decode a cue file, picking the decoder from its extension.

    Args:
        path: .wav, .flac or .mp3 file

    Returns:
        Decoded resource positioned at the start

    Raises:
        UnsupportedAudioFormat: extension has no decoder
        AudioLoadError: file missing or not decodable
    """
    path = Path(path)
    extension = path.suffix.lower()
    decoder = DECODERS.get(extension)
    if decoder is None:
        raise UnsupportedAudioFormat(f"unrecognised file extension {path.suffix!r} for {path}")

    try:
        segment = decoder(str(path))
    except FileNotFoundError as exc:
        raise AudioLoadError(f"cannot open {path}: {exc}") from exc
    except Exception as exc:
        raise AudioLoadError(f"cannot decode {path}: {exc}") from exc

    logger.info("initialising stream for file %s", path)
    return AudioResource.from_segment(segment, path)


class CuePlayer:
    """
    Plays one AudioResource on demand.

    ``on_complete`` is invoked once per ``play()`` after the audio has been
    rendered and after ``on_finished`` (if given) has run. It is invoked from
    the PortAudio callback thread, so it must be thread-safe.

    Calling ``play()`` again while a previous call is still rendering is not
    supported; the coordinator never does this.
    """

    def __init__(
        self,
        resource: AudioResource,
        on_complete: Callable[[], None],
        on_finished: Optional[Callable[[], None]] = None,
        *,
        name: str = "cue",
    ) -> None:
        self.resource = resource
        self.name = name
        self._on_complete = on_complete
        self._on_finished = on_finished
        self._stream = None
        self._lock = threading.Lock()

    def play(self) -> None:
        """Rewind the resource and start rendering it without blocking."""
        completed = threading.Event()

        def finished() -> None:
            if completed.is_set():
                return
            completed.set()
            try:
                if self._on_finished is not None:
                    self._on_finished()
            except Exception as exc:
                logger.error("%s: completion handler failed: %s", self.name, exc)
            finally:
                self._on_complete()

        stream = None
        try:
            # PortAudio is loaded on first use so the rest of the package imports without it
            import sounddevice as sd

            self._close_stream()
            self.resource.seek(0)
            stream = sd.OutputStream(
                samplerate=self.resource.sample_rate,
                channels=self.resource.channels,
                dtype="float32",
                callback=self._fill,
                finished_callback=finished,
            )
            stream.start()
        except Exception as exc:
            # missing PortAudio, no output device, bad stream parameters
            logger.error("%s: cannot play %s: %s", self.name, self.resource.path, exc)
            if stream is not None:
                try:
                    stream.close()
                except Exception as close_exc:
                    logger.error("%s: error closing output stream: %s", self.name, close_exc)
            finished()
            return

        with self._lock:
            self._stream = stream
        logger.debug("%s: playing %s", self.name, self.resource.path)

    def close(self) -> None:
        self._close_stream()

    def _fill(self, outdata, frames, time, status) -> None:
        import sounddevice as sd

        if status:
            logger.warning("%s: output status %s", self.name, status)
        chunk = self.resource.read(frames)
        count = len(chunk)
        outdata[:count] = chunk
        if count < frames:
            outdata[count:] = 0
            raise sd.CallbackStop

    def _close_stream(self) -> None:
        with self._lock:
            stream, self._stream = self._stream, None
        if stream is None:
            return
        try:
            stream.close()
        except Exception as exc:
            logger.error("%s: error closing output stream: %s", self.name, exc)
