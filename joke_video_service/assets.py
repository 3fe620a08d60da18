from __future__ import annotations

import asyncio
import base64
import binascii
import hashlib
import io
import logging
from typing import Callable, Dict, Iterable, List, Optional

from PIL import Image, UnidentifiedImageError

from schemas.joke_script import Scene

logger = logging.getLogger(__name__)

AssetListener = Callable[[str], None]


def asset_key(image_base64: str) -> str:
    return hashlib.sha1(image_base64.encode("ascii", "ignore")).hexdigest()


def decode_image(image_base64: str) -> Image.Image:
    raw = base64.b64decode(image_base64, validate=False)
    image = Image.open(io.BytesIO(raw))
    image.load()
    return image.convert("RGB")


class ImageAssets:
    """Decoded scene images keyed by content, plus an 'asset loaded' event.

    Keys are content hashes so reordering scenes never mismatches images.
    """

    def __init__(self) -> None:
        self._images: Dict[str, Image.Image] = {}
        self._listeners: List[AssetListener] = []

    def subscribe(self, listener: AssetListener) -> Callable[[], None]:
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def get(self, scene: Scene) -> Optional[Image.Image]:
        if not scene.image_base64:
            return None
        return self._images.get(asset_key(scene.image_base64))

    def is_loaded(self, scene: Scene) -> bool:
        return self.get(scene) is not None

    def add(self, image_base64: str, image: Image.Image) -> str:
        key = asset_key(image_base64)
        self._images[key] = image
        for listener in list(self._listeners):
            listener(key)
        return key

    def load(self, scene: Scene) -> Optional[Image.Image]:
        if not scene.image_base64:
            return None
        cached = self.get(scene)
        if cached is not None:
            return cached
        try:
            image = decode_image(scene.image_base64)
        except (binascii.Error, UnidentifiedImageError, OSError, ValueError) as exc:
            logger.warning("Could not decode scene image, keeping placeholder: %s", exc)
            return None
        self.add(scene.image_base64, image)
        return image

    async def load_all(self, scenes: Iterable[Scene]) -> int:
        """Decode missing images off the loop; events still fire on the loop."""
        loop = asyncio.get_running_loop()
        loaded = 0
        for scene in scenes:
            if not scene.image_base64 or self.is_loaded(scene):
                continue
            try:
                image = await loop.run_in_executor(None, decode_image, scene.image_base64)
            except (binascii.Error, UnidentifiedImageError, OSError, ValueError) as exc:
                logger.warning("Could not decode scene image, keeping placeholder: %s", exc)
                continue
            self.add(scene.image_base64, image)
            loaded += 1
        return loaded
