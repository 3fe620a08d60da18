from __future__ import annotations

import asyncio
import base64
import io
import logging
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from joke_video_service.assets import ImageAssets
from joke_video_service.capture import ExportError
from joke_video_service.exporter import VideoExporter, export_duration
from joke_video_service.frame_renderer import SURFACE_SIZE, create_surface, render
from joke_video_service.playback import AudioTrack, PlaybackEngine
from joke_video_service.scene_store import SceneStore
from joke_video_service.scheduler import Scheduler
from schemas.joke_script import GeneratedVideo, Scene

logger = logging.getLogger(__name__)


class PreviewStudio:
    """One generated video wired up for editing, preview playback and export."""

    def __init__(
        self,
        video: GeneratedVideo,
        export_dir: Path,
        scheduler: Optional[Scheduler] = None,
        surface_size: Tuple[int, int] = SURFACE_SIZE,
        **exporter_options: Any,
    ) -> None:
        if video.joke is None:
            raise ValueError("A studio needs a generated joke script")
        self.video = video
        self.store = SceneStore(video.joke.scenes)
        self.assets = ImageAssets()
        self.surface = create_surface(surface_size)
        self.audio = AudioTrack(base64.b64decode(video.audio_base64)) if video.audio_base64 else None
        self.engine = PlaybackEngine(
            self.surface,
            lambda: self.store.scenes,
            assets=self.assets,
            audio=self.audio,
            scheduler=scheduler,
        )
        self.exporter = VideoExporter(self.engine, export_dir, on_download=self._on_download, **exporter_options)
        self.download_path: Optional[Path] = None
        self._export_task: Optional[asyncio.Task] = None
        self.store.subscribe(self._on_scenes_changed)
        self.engine.redraw()

    @property
    def title(self) -> str:
        assert self.video.joke is not None
        return self.video.joke.title

    @property
    def scenes(self) -> List[Scene]:
        return self.store.scenes

    async def load_assets(self) -> int:
        return await self.assets.load_all(self.store.scenes)

    def _on_scenes_changed(self, scenes: List[Scene]) -> None:
        for scene in scenes:
            self.assets.load(scene)
        if not self.engine.is_playing:
            self.engine.redraw()

    def _on_download(self, path: Path) -> None:
        self.download_path = path
        logger.info("Export ready for download: %s", path)

    def frame_png(self, scene_index: int, show_punchline: bool) -> bytes:
        """Render a still on a scratch surface; the live surface belongs to playback."""
        scratch = create_surface(self.surface.size)
        render(scratch, self.store.scenes, scene_index, show_punchline, self.assets)
        buffer = io.BytesIO()
        scratch.save(buffer, format="PNG")
        return buffer.getvalue()

    def play(self) -> None:
        self.engine.play()

    def stop(self) -> None:
        self.engine.stop()

    def start_export(self) -> asyncio.Task:
        pending = self._export_task is not None and not self._export_task.done()
        if pending or self.exporter.is_exporting:
            raise ExportError("An export is already in progress.")
        task = asyncio.create_task(
            self.exporter.export_video(self.surface, self.audio, self.store.scenes, self.title)
        )
        task.add_done_callback(self._export_finished)
        self._export_task = task
        return task

    def close(self) -> None:
        """Discard the video: stop playback, abandon any export and remove the exported file."""
        self.engine.stop()
        if self._export_task is not None and not self._export_task.done():
            self._export_task.cancel()
        if self.download_path is not None:
            self.download_path.unlink(missing_ok=True)
            self.download_path = None
        logger.info("Closed studio for '%s'", self.title)

    def _export_finished(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            # already surfaced through exporter.status / exporter.error
            logger.warning("Export for '%s' failed: %s", self.title, exc)

    def snapshot(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "topic": self.video.joke.topic if self.video.joke else "",
            "scenes": [scene.model_dump(exclude={"image_base64"}) for scene in self.store.scenes],
            "images_loaded": [self.assets.is_loaded(scene) for scene in self.store.scenes],
            "has_audio": self.audio is not None,
            "total_duration": self.store.total_duration,
            "export_duration": export_duration(self.store.scenes, self.exporter.buffer_seconds),
            "playback": asdict(self.engine.state),
            "export": {
                "status": self.exporter.status,
                "progress": self.exporter.progress,
                "error": self.exporter.error,
                "filename": self.download_path.name if self.download_path else None,
            },
        }
