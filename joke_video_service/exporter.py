"""Export of a full playback run into a downloadable WebM file.

The exporter owns the export lifecycle: setup checks, then a real-time
recording of the preview surface while the engine plays every scene once,
then muxing of the recorded frames and the routed narration by
``MoviePyEncoder``.
"""
from __future__ import annotations

import asyncio
import bisect
import io
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional, Sequence

import imageio_ffmpeg  # type: ignore[import]
import numpy as np
from moviepy import VideoClip  # type: ignore[import]
from PIL import Image

from joke_video_service.capture import (
    AudioMixer,
    CaptureSession,
    ExportError,
    FrameRecorder,
    NoSurfaceError,
    RecorderUnsupportedError,
)
from joke_video_service.playback import AudioTrack, PlaybackEngine
from joke_video_service.scheduler import Cancellable, LoopScheduler, Scheduler
from schemas.joke_script import Scene

logger = logging.getLogger(__name__)

EXPORT_BUFFER_SECONDS = 0.5
MIN_BUFFER_SECONDS = 0.5
EXPORT_FPS = 30


def export_filename(title: str) -> str:
    safe = "".join(ch.lower() if ch.isalnum() else "-" for ch in title)
    safe = "-".join(filter(None, safe.split("-")))
    return f"dad-joke-{safe or 'video'}.webm"


def export_duration(scenes: Sequence[Scene], buffer_seconds: float = EXPORT_BUFFER_SECONDS) -> float:
    return sum(scene.duration for scene in scenes) + buffer_seconds


@dataclass
class ExportResult:
    path: Path
    duration: float
    frame_count: int

    @property
    def filename(self) -> str:
        return self.path.name


class MoviePyEncoder:
    """Mux recorded JPEG chunks and the captured audio into a WebM file."""

    codec = "libvpx-vp9"
    audio_codec = "libvorbis"
    bitrate = "4000k"
    # browsers only play 4:2:0 VP9; rgb24 frames would otherwise encode as gbrp
    ffmpeg_params = ("-pix_fmt", "yuv420p")

    def check(self) -> None:
        try:
            imageio_ffmpeg.get_ffmpeg_exe()
        except RuntimeError as exc:
            raise RecorderUnsupportedError(f"ffmpeg is not available for recording: {exc}") from exc

    def encode(self, session: CaptureSession, audio: Optional[Any], output_path: Path, fps: int) -> Path:
        chunks = session.recorded_chunks
        if not chunks:
            raise ExportError("No frames were recorded.")
        timestamps = [chunk.timestamp for chunk in chunks]
        cache: dict = {}

        def frame_at(t: float) -> np.ndarray:
            # latest chunk captured at or before t
            index = max(0, bisect.bisect_right(timestamps, t) - 1)
            if cache.get("index") != index:
                cache["index"] = index
                cache["frame"] = np.asarray(Image.open(io.BytesIO(chunks[index].data)).convert("RGB"))
            return cache["frame"]

        clip = VideoClip(frame_function=frame_at, duration=session.duration)
        if audio is not None:
            clip = clip.with_audio(audio)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            clip.write_videofile(
                str(output_path),
                fps=fps,
                codec=self.codec,
                audio_codec=self.audio_codec,
                bitrate=self.bitrate,
                ffmpeg_params=list(self.ffmpeg_params),
                logger=None,
            )
        finally:
            clip.close()
        return output_path


class VideoExporter:
    """Record a full playback run of the surface plus narration into a file."""

    def __init__(
        self,
        engine: PlaybackEngine,
        output_dir: Path,
        scheduler: Optional[Scheduler] = None,
        encoder: Optional[MoviePyEncoder] = None,
        fps: int = EXPORT_FPS,
        buffer_seconds: float = EXPORT_BUFFER_SECONDS,
        on_download: Optional[Callable[[Path], None]] = None,
        mixer_factory: Callable[[Optional[AudioTrack]], AudioMixer] = AudioMixer.open,
    ) -> None:
        if buffer_seconds < MIN_BUFFER_SECONDS:
            raise ValueError(f"buffer_seconds must be at least {MIN_BUFFER_SECONDS}s to flush the encoder")
        self.engine = engine
        self.output_dir = Path(output_dir)
        self.scheduler: Scheduler = scheduler or engine.scheduler or LoopScheduler()
        self.encoder = encoder or MoviePyEncoder()
        self.fps = fps
        self.buffer_seconds = buffer_seconds
        self.on_download = on_download
        self.mixer_factory = mixer_factory
        self.status = "idle"
        self.progress = ""
        self.error: Optional[str] = None
        self.result: Optional[ExportResult] = None

    @property
    def is_exporting(self) -> bool:
        return self.status in {"preparing", "recording", "saving"}

    def _set(self, status: str, progress: str) -> None:
        self.status = status
        self.progress = progress
        logger.debug("Export status -> %s (%s)", status, progress)

    def _fail(self, message: str) -> None:
        self.error = message
        self._set("failed", "Export failed")

    async def export_video(
        self,
        surface: Optional[Image.Image],
        audio_track: Optional[AudioTrack],
        scenes: Sequence[Scene],
        title: str,
    ) -> ExportResult:
        if self.is_exporting:
            raise ExportError("An export is already in progress.")

        scenes = list(scenes)
        self.error = None
        self.result = None
        self._set("preparing", "Preparing export...")

        # Setup: nothing below may touch the playback engine until it all succeeded
        mixer: Optional[AudioMixer] = None
        try:
            if surface is None:
                raise NoSurfaceError("There is no preview surface to record.")
            if not scenes:
                raise ExportError("There are no scenes to export.")
            self.encoder.check()
            mixer = self.mixer_factory(audio_track)
            recorder = FrameRecorder(surface, self.scheduler, self.fps)
        except Exception as exc:
            if mixer is not None:
                mixer.close()
            error = exc if isinstance(exc, ExportError) else ExportError(f"Export setup failed: {exc}")
            self._fail(str(error))
            logger.error("Export error: %s", error)
            if error is exc:
                raise
            raise error from exc

        loop = asyncio.get_running_loop()
        stopped: asyncio.Future = loop.create_future()
        stop_handle: Optional[Cancellable] = None
        stop_after = export_duration(scenes, self.buffer_seconds)

        def scheduled_stop() -> None:
            if not stopped.done():
                stopped.set_result(None)

        try:
            if audio_track is not None and self.engine.audio is not audio_track:
                self.engine.set_audio(audio_track)
            # recorder first so the opening frames are not missed
            session = recorder.start(stop_after)
            mixer.attach(session)
            self._set("recording", "Recording video...")
            self.engine.play(scenes)
            stop_handle = self.scheduler.call_later(stop_after, scheduled_stop)

            await stopped

            session = recorder.stop()
            session.finalized = True
            self.engine.stop()
            self._set("saving", "Saving file...")

            audio = mixer.render(session.duration)
            output_path = self.output_dir / export_filename(title)
            await loop.run_in_executor(None, self.encoder.encode, session, audio, output_path, self.fps)

            result = ExportResult(
                path=output_path,
                duration=session.duration,
                frame_count=len(session.recorded_chunks),
            )
            self.result = result
            if self.on_download is not None:
                self.on_download(output_path)
            self._set("done", "")
            logger.info("Exported %s (%.2fs, %d frames)", output_path.name, result.duration, result.frame_count)
            return result
        except ExportError as exc:
            self._fail(str(exc))
            logger.error("Export error: %s", exc)
            raise
        except Exception as exc:
            self._fail(f"Export failed: {exc}")
            logger.exception("Export error")
            raise ExportError(f"Export failed: {exc}") from exc
        finally:
            if stop_handle is not None:
                stop_handle.cancel()
            if recorder.recording:
                recorder.stop()
            mixer.close()
            if self.is_exporting:
                self._fail("Export cancelled")
