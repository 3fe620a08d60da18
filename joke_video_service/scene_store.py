from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, List, Optional, Sequence

from schemas.joke_script import Scene

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("setup", "punchline", "duration", "image_prompt")

SceneListener = Callable[[List[Scene]], None]


class SceneStore:
    """Ordered, in-memory list of scenes edited by the user and read by playback."""

    def __init__(self, scenes: Optional[Iterable[Scene]] = None) -> None:
        self._scenes: List[Scene] = list(scenes or [])
        self._listeners: List[SceneListener] = []

    @property
    def scenes(self) -> List[Scene]:
        return list(self._scenes)

    @property
    def total_duration(self) -> float:
        return sum(scene.duration for scene in self._scenes)

    def __len__(self) -> int:
        return len(self._scenes)

    def __getitem__(self, index: int) -> Scene:
        return self._scenes[index]

    def subscribe(self, listener: SceneListener) -> Callable[[], None]:
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def _notify(self) -> None:
        snapshot = self.scenes
        for listener in list(self._listeners):
            listener(snapshot)

    def replace(self, scenes: Iterable[Scene]) -> None:
        self._scenes = list(scenes)
        self._notify()

    def attach_images(self, images: Sequence[Optional[str]]) -> None:
        """Assign generated images to scenes by position."""
        self._scenes = [
            scene.model_copy(update={"image_base64": images[i] if i < len(images) else None})
            for i, scene in enumerate(self._scenes)
        ]
        self._notify()

    def update_scene(self, index: int, field: str, value: Any) -> Scene:
        if field not in EDITABLE_FIELDS:
            raise ValueError(f"Scene field '{field}' is not editable")
        current = self._scenes[index]
        # model_validate re-runs the field constraints (duration > 0)
        updated = Scene.model_validate({**current.model_dump(), field: value})
        self._scenes = [updated if i == index else scene for i, scene in enumerate(self._scenes)]
        self._notify()
        return updated

    def move_scene(self, from_index: int, to_index: int) -> bool:
        if to_index < 0 or to_index >= len(self._scenes):
            return False
        updated = list(self._scenes)
        moved = updated.pop(from_index)
        updated.insert(to_index, moved)
        self._scenes = updated
        logger.debug("Moved scene %d -> %d", from_index, to_index)
        self._notify()
        return True

    def move_up(self, index: int) -> bool:
        return self.move_scene(index, index - 1)

    def move_down(self, index: int) -> bool:
        return self.move_scene(index, index + 1)
