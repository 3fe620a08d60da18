"""Playback engine: a wall-clock driven state machine over the scene list.

States are ``Stopped`` and ``Playing(scene_index, scene_start, punchline)``.
One ``FrameLoop`` at most is alive; ``stop()`` cancels it before anything
else. Audio is started together with the visuals and never resynchronized,
so long clips may drift from the narration.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Callable, List, Optional, Protocol, Sequence

from PIL import Image

from joke_video_service.assets import ImageAssets
from joke_video_service.frame_renderer import render
from joke_video_service.scheduler import FrameLoop, LoopScheduler, Scheduler
from schemas.joke_script import Scene

logger = logging.getLogger(__name__)

FRAME_INTERVAL = 1 / 60


@dataclass
class PlaybackState:
    current_scene_index: int = 0
    scene_start_time: float = 0.0
    punchline_revealed: bool = False
    is_playing: bool = False


class AudioOutput(Protocol):
    def start(self, track: "AudioTrack") -> None: ...

    def stop(self, track: "AudioTrack") -> None: ...


AudioTap = Callable[[str, float], None]


class AudioTrack:
    """The narration track: encoded audio plus play/pause/rewind state.

    Taps get ``("start" | "stop", timestamp)`` events; the export mixer uses
    one to route the track into its capture destination.
    """

    def __init__(
        self,
        data: bytes,
        audio_format: str = "mp3",
        output: Optional[AudioOutput] = None,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self.data = data
        self.audio_format = audio_format
        self.output = output
        self._clock = clock
        self._taps: List[AudioTap] = []
        self.position = 0.0
        self.started_at: Optional[float] = None

    @property
    def is_playing(self) -> bool:
        return self.started_at is not None

    def bind_clock(self, clock: Callable[[], float]) -> None:
        self._clock = clock

    def _now(self) -> float:
        return self._clock() if self._clock is not None else 0.0

    def add_tap(self, tap: AudioTap) -> Callable[[], None]:
        self._taps.append(tap)
        return lambda: self._taps.remove(tap)

    def _emit(self, event: str, at: float) -> None:
        for tap in list(self._taps):
            tap(event, at)

    def play(self) -> None:
        if self.is_playing:
            return
        self.started_at = self._now() - self.position
        self._emit("start", self._now())
        if self.output is not None:
            try:
                self.output.start(self)
            except Exception as exc:  # noqa: BLE001
                # Autoplay is best effort; a blocked or missing device is not an error
                logger.debug("Audio output refused to start: %s", exc)

    def pause(self) -> None:
        if not self.is_playing:
            return
        now = self._now()
        self.position = now - self.started_at if self.started_at is not None else 0.0
        self.started_at = None
        self._emit("stop", now)
        if self.output is not None:
            try:
                self.output.stop(self)
            except Exception as exc:  # noqa: BLE001
                logger.debug("Audio output failed to stop: %s", exc)

    def rewind(self) -> None:
        was_playing = self.is_playing
        if was_playing:
            self.pause()
        self.position = 0.0
        if was_playing:
            self.play()


StateListener = Callable[[PlaybackState], None]


class PlaybackEngine:
    def __init__(
        self,
        surface: Image.Image,
        scenes_provider: Callable[[], Sequence[Scene]],
        assets: Optional[ImageAssets] = None,
        audio: Optional[AudioTrack] = None,
        scheduler: Optional[Scheduler] = None,
        frame_interval: float = FRAME_INTERVAL,
    ) -> None:
        self.surface = surface
        self._scenes_provider = scenes_provider
        self.assets = assets
        self.scheduler: Scheduler = scheduler or LoopScheduler()
        self.frame_interval = frame_interval
        self._state = PlaybackState()
        self._scenes: List[Scene] = []
        self._loop: Optional[FrameLoop] = None
        self._listeners: List[StateListener] = []
        self.audio: Optional[AudioTrack] = None
        self.set_audio(audio)
        if assets is not None:
            assets.subscribe(self._on_asset_loaded)

    # -- observation -------------------------------------------------

    @property
    def state(self) -> PlaybackState:
        return replace(self._state)

    @property
    def is_playing(self) -> bool:
        return self._state.is_playing

    @property
    def tick_loop_active(self) -> bool:
        return self._loop is not None and self._loop.active

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def _notify(self) -> None:
        snapshot = self.state
        for listener in list(self._listeners):
            listener(snapshot)

    def set_audio(self, audio: Optional[AudioTrack]) -> None:
        if audio is not None:
            audio.bind_clock(self.scheduler.time)
        self.audio = audio

    # -- drawing -----------------------------------------------------

    def _draw(self, scenes: Sequence[Scene], index: int, punchline: bool) -> None:
        render(self.surface, scenes, index, punchline, self.assets)

    def redraw(self) -> None:
        """Render the current frame once (used after edits and asset loads)."""
        scenes = self._scenes if self.is_playing else list(self._scenes_provider())
        if not scenes:
            return
        index = min(self._state.current_scene_index, len(scenes) - 1)
        self._draw(scenes, index, self._state.punchline_revealed)

    def _on_asset_loaded(self, key: str) -> None:
        if not self.is_playing:
            self.redraw()

    # -- transitions -------------------------------------------------

    def play(self, scenes: Optional[Sequence[Scene]] = None) -> None:
        """Start from scene 0. An active playback is stopped and restarted."""
        if self._state.is_playing:
            logger.info("play() while playing: restarting from scene 0")
            self.stop()

        snapshot = list(scenes) if scenes is not None else list(self._scenes_provider())
        if not snapshot:
            logger.info("play() ignored: no scenes")
            return

        self._scenes = snapshot
        self._state = PlaybackState(
            current_scene_index=0,
            scene_start_time=self.scheduler.time(),
            punchline_revealed=False,
            is_playing=True,
        )

        if self.audio is not None:
            self.audio.pause()
            self.audio.position = 0.0
            self.audio.play()

        self._loop = FrameLoop(self.scheduler, self._tick, self.frame_interval).start()
        self._notify()

    def _tick(self) -> bool:
        if not self._state.is_playing:
            return False

        state = self._state
        scene = self._scenes[state.current_scene_index]
        elapsed = self.scheduler.time() - state.scene_start_time

        if elapsed >= scene.duration / 2 and not state.punchline_revealed:
            state.punchline_revealed = True
            self._notify()

        self._draw(self._scenes, state.current_scene_index, state.punchline_revealed)

        if elapsed >= scene.duration:
            if state.current_scene_index + 1 >= len(self._scenes):
                self._finish()
                return False
            state.current_scene_index += 1
            state.scene_start_time = self.scheduler.time()
            state.punchline_revealed = False
            self._notify()

        return True

    def _finish(self) -> None:
        self._loop = None
        self._state.is_playing = False
        logger.info("Playback finished after %d scenes", len(self._scenes))
        self._notify()

    def stop(self) -> None:
        if self._loop is not None:
            self._loop.cancel()
            self._loop = None

        if self.audio is not None:
            self.audio.pause()
            self.audio.rewind()

        self._state = PlaybackState()
        scenes = list(self._scenes_provider())
        if scenes:
            self._draw(scenes, 0, False)
        self._notify()
