import base64
import io
import sys
from pathlib import Path
from typing import Callable, List, Optional

import pytest
from PIL import Image

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from schemas.joke_script import GeneratedVideo, JokeScript, Scene  # noqa: E402


class ManualHandle:
    def __init__(self, when: float, seq: int, callback: Callable[[], None]) -> None:
        self.when = when
        self.seq = seq
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Deterministic clock: callbacks only run when the test advances time."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start
        self._queue: List[ManualHandle] = []
        self._seq = 0

    def time(self) -> float:
        return self.now

    def call_later(self, delay: float, callback: Callable[[], None]) -> ManualHandle:
        handle = ManualHandle(self.now + max(0.0, delay), self._seq, callback)
        self._seq += 1
        self._queue.append(handle)
        return handle

    @property
    def pending(self) -> int:
        return sum(1 for handle in self._queue if not handle.cancelled)

    def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while True:
            due = [h for h in self._queue if not h.cancelled and h.when <= target + 1e-9]
            if not due:
                break
            handle = min(due, key=lambda h: (h.when, h.seq))
            self._queue.remove(handle)
            self.now = max(self.now, handle.when)
            handle.callback()
        self._queue = [h for h in self._queue if not h.cancelled]
        self.now = target


def make_image_base64(color=(200, 30, 30), size=(32, 32)) -> str:
    buffer = io.BytesIO()
    Image.new("RGB", size, color=color).save(buffer, format="PNG")
    return base64.b64encode(buffer.getvalue()).decode("ascii")


def make_scenes(durations=(5, 5, 7), images: Optional[List[Optional[str]]] = None) -> List[Scene]:
    scenes = []
    for i, duration in enumerate(durations):
        scenes.append(
            Scene(
                setup=f"Setup line {i + 1}",
                punchline=f"Punchline {i + 1}",
                image_prompt=f"cartoon dad number {i + 1}",
                duration=duration,
                image_base64=images[i] if images and i < len(images) else None,
            )
        )
    return scenes


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def scenes() -> List[Scene]:
    return make_scenes()


@pytest.fixture
def small_surface() -> Image.Image:
    return Image.new("RGB", (54, 96))


@pytest.fixture
def generated_video() -> GeneratedVideo:
    images = [make_image_base64((200, 30, 30)), make_image_base64((30, 200, 30)), None]
    joke = JokeScript(topic="coffee", title="Brew Haha", scenes=make_scenes((1, 1, 1), images))
    return GeneratedVideo(
        joke=joke,
        audio_base64=base64.b64encode(b"ID3fake-mp3").decode("ascii"),
        status="preview",
    )
