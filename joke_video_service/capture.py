"""Real-time capture of the raster surface and the narration track.

The recorder snapshots the surface at a fixed frame rate into timestamped
JPEG chunks. The audio mixer taps the ``AudioTrack``: the track keeps
playing through its own output while the capture destination records when
it started and stopped, so the exported audio lines up with the frames.
"""
from __future__ import annotations

import io
import logging
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, List, Optional, Tuple

from moviepy import AudioFileClip, CompositeAudioClip  # type: ignore[import]
from PIL import Image

from joke_video_service.playback import AudioTrack
from joke_video_service.scheduler import FrameLoop, Scheduler

logger = logging.getLogger(__name__)


class ExportError(RuntimeError):
    """Raised when the capture/export pipeline cannot run or finish."""


class NoSurfaceError(ExportError):
    """There is no raster surface to capture."""


class RecorderUnsupportedError(ExportError):
    """No usable recorder/encoder on this machine."""


class AudioContextError(ExportError):
    """The audio mixing context could not be created."""


@dataclass
class RecordedChunk:
    timestamp: float  # seconds since the session started
    data: bytes


@dataclass
class AudioSegmentSpan:
    session_start: float
    track_offset: float
    session_end: Optional[float] = None


@dataclass
class CaptureSession:
    started_at: float
    expected_stop_at: float
    recorded_chunks: List[RecordedChunk] = field(default_factory=list)
    audio_spans: List[AudioSegmentSpan] = field(default_factory=list)
    stopped_at: Optional[float] = None
    finalized: bool = False

    @property
    def duration(self) -> float:
        end = self.stopped_at if self.stopped_at is not None else self.expected_stop_at
        return max(0.0, end - self.started_at)


def encode_frame(surface: Image.Image, quality: int = 90) -> bytes:
    buffer = io.BytesIO()
    surface.convert("RGB").save(buffer, format="JPEG", quality=quality)
    return buffer.getvalue()


class FrameRecorder:
    """Capture stream for a surface: one encoded frame every 1/fps seconds."""

    def __init__(self, surface: Image.Image, scheduler: Scheduler, fps: int = 30) -> None:
        if surface is None:
            raise NoSurfaceError("A raster surface is required for recording")
        if fps <= 0:
            raise ValueError("fps must be positive")
        self.surface = surface
        self.scheduler = scheduler
        self.fps = fps
        self.session: Optional[CaptureSession] = None
        self._loop: Optional[FrameLoop] = None

    @property
    def recording(self) -> bool:
        return self._loop is not None

    def start(self, expected_duration: float) -> CaptureSession:
        if self.recording:
            raise RuntimeError("Recorder already started")
        now = self.scheduler.time()
        self.session = CaptureSession(started_at=now, expected_stop_at=now + expected_duration)
        self._capture()
        self._loop = FrameLoop(self.scheduler, self._on_frame, 1 / self.fps).start()
        logger.info("Recording started at %d fps, expected %.2fs", self.fps, expected_duration)
        return self.session

    def _capture(self) -> None:
        if self.session is None:
            raise RuntimeError("Recorder was never started")
        timestamp = self.scheduler.time() - self.session.started_at
        self.session.recorded_chunks.append(RecordedChunk(timestamp=timestamp, data=encode_frame(self.surface)))

    def _on_frame(self) -> bool:
        if self.session is None or self.session.stopped_at is not None:
            return False
        self._capture()
        return True

    def stop(self) -> CaptureSession:
        if self.session is None:
            raise RuntimeError("Recorder was never started")
        if self._loop is not None:
            self._loop.cancel()
            self._loop = None
        if self.session.stopped_at is None:
            self._capture()
            self.session.stopped_at = self.scheduler.time()
            logger.info(
                "Recording stopped: %d chunks over %.2fs",
                len(self.session.recorded_chunks),
                self.session.duration,
            )
        return self.session


AudioDecoder = Callable[[Path], Any]


class AudioMixer:
    """Audio mixing context for one export.

    ``open`` decodes the narration (so a broken track fails during setup),
    ``attach`` starts routing track events into the session, ``render``
    builds the captured audio clip and ``close`` releases everything.
    """

    def __init__(self, track: Optional[AudioTrack], work_dir: Path, source: Any) -> None:
        self.track = track
        self.work_dir = work_dir
        self.source = source
        self.session: Optional[CaptureSession] = None
        self._detach: Optional[Callable[[], None]] = None
        self._rendered: List[Any] = []
        self.closed = False

    @classmethod
    def open(cls, track: Optional[AudioTrack], decoder: AudioDecoder = AudioFileClip) -> "AudioMixer":
        work_dir = Path(tempfile.mkdtemp(prefix="joke-export-"))
        if track is None or not track.data:
            return cls(None, work_dir, None)
        audio_path = work_dir / f"narration.{track.audio_format}"
        try:
            audio_path.write_bytes(track.data)
            source = decoder(audio_path)
        except Exception as exc:
            shutil.rmtree(work_dir, ignore_errors=True)
            raise AudioContextError(f"Could not open the narration track: {exc}") from exc
        return cls(track, work_dir, source)

    @property
    def has_audio(self) -> bool:
        return self.source is not None

    def attach(self, session: CaptureSession) -> None:
        self.session = session
        if self.track is None:
            return
        self._detach = self.track.add_tap(self._on_track_event)
        if self.track.is_playing:
            self._on_track_event("start", session.started_at)

    def _on_track_event(self, event: str, at: float) -> None:
        if self.session is None or self.session.stopped_at is not None or self.track is None:
            return
        relative = at - self.session.started_at
        if event == "start":
            offset = at - (self.track.started_at if self.track.started_at is not None else at)
            self.session.audio_spans.append(AudioSegmentSpan(session_start=relative, track_offset=offset))
        elif event == "stop" and self.session.audio_spans:
            span = self.session.audio_spans[-1]
            if span.session_end is None:
                span.session_end = relative

    def detach(self) -> None:
        if self._detach is not None:
            self._detach()
            self._detach = None

    def spans(self, duration: float) -> List[Tuple[float, float, float]]:
        """(session_start, track_offset, length) for every routed span, clipped to ``duration``."""
        if self.session is None or not self.has_audio:
            return []
        source_length = float(getattr(self.source, "duration", 0.0) or 0.0)
        result = []
        for span in self.session.audio_spans:
            end = span.session_end if span.session_end is not None else duration
            end = min(end, duration)
            length = min(end - span.session_start, source_length - span.track_offset)
            if length > 0:
                result.append((span.session_start, span.track_offset, length))
        return result

    def render(self, duration: float) -> Optional[Any]:
        """The destination stream as one moviepy audio clip, or None for silence."""
        parts = []
        for start, offset, length in self.spans(duration):
            part = self.source.subclipped(offset, offset + length).with_start(start)
            parts.append(part)
        if not parts:
            return None
        mixed = CompositeAudioClip(parts).with_duration(duration)
        self._rendered.append(mixed)
        return mixed

    def close(self) -> None:
        if self.closed:
            return
        self.detach()
        for clip in [*self._rendered, self.source]:
            if clip is None:
                continue
            try:
                clip.close()
            except Exception as exc:  # noqa: BLE001
                logger.debug("Failed to close audio clip: %s", exc)
        shutil.rmtree(self.work_dir, ignore_errors=True)
        self.closed = True
