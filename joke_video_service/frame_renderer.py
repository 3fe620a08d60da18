from __future__ import annotations

from functools import lru_cache
from typing import Dict, List, Optional, Sequence, Tuple

from PIL import Image, ImageDraw, ImageFont  # type: ignore[import]

from joke_video_service.assets import ImageAssets
from schemas.joke_script import Scene

SURFACE_SIZE = (540, 960)

IMAGE_REGION_RATIO = 0.6
OVERLAY_STRIP = 36
TEXT_MARGIN = 48
DOT_RADIUS = 6
DOT_SPACING = 24

BACKGROUND = (24, 24, 27)          # zinc 900
PLACEHOLDER = (39, 39, 42)         # zinc 800
MUTED_TEXT = (113, 113, 122)       # zinc 500
DOT_ACTIVE = (245, 158, 11)        # amber 500
DOT_INACTIVE = (82, 82, 91)        # zinc 600
OVERLAY = (0, 0, 0, 204)
SETUP_COLOR = (255, 255, 255)
PUNCHLINE_COLOR = (251, 191, 36)   # amber 400

_COVER_CACHE: Dict[Tuple[int, int, int], Tuple[Image.Image, Image.Image]] = {}
_COVER_CACHE_LIMIT = 16


def create_surface(size: Tuple[int, int] = SURFACE_SIZE) -> Image.Image:
    return Image.new("RGB", size, color=BACKGROUND)


@lru_cache(maxsize=32)
def _resolve_font(size: int, bold: bool = False) -> ImageFont.ImageFont:
    """Attempt to load a truetype font, falling back to Pillow's scalable default."""
    if bold:
        font_candidates: Sequence[str] = (
            "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf",
            "/System/Library/Fonts/Supplemental/Arial Bold.ttf",
            "C:/Windows/Fonts/arialbd.ttf",
        )
    else:
        font_candidates = (
            "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
            "/System/Library/Fonts/Supplemental/Arial.ttf",
            "C:/Windows/Fonts/arial.ttf",
        )

    for path in font_candidates:
        try:
            return ImageFont.truetype(path, size=size)
        except (OSError, IOError):
            continue

    return ImageFont.load_default(size=size)


def wrap_text(draw: ImageDraw.ImageDraw, text: str, font: ImageFont.ImageFont, max_width: float) -> List[str]:
    """Greedily pack words into lines no wider than max_width, as measured by the surface."""
    words = text.split()
    if not words:
        return []
    lines: List[str] = []
    current_line = words[0]
    for word in words[1:]:
        test_line = f"{current_line} {word}"
        if draw.textlength(test_line, font=font) <= max_width:
            current_line = test_line
        else:
            lines.append(current_line)
            current_line = word
    lines.append(current_line)
    return lines


def _draw_centered_lines(
    draw: ImageDraw.ImageDraw,
    lines: Sequence[str],
    center_x: float,
    top: float,
    font: ImageFont.ImageFont,
    line_height: int,
    fill: Tuple[int, ...],
) -> None:
    y = top
    for line in lines:
        width = draw.textlength(line, font=font)
        draw.text((center_x - width / 2, y), line, font=font, fill=fill)
        y += line_height


def _cover_fit(image: Image.Image, width: int, height: int) -> Image.Image:
    """Scale to cover a width x height box, centered and cropped to it."""
    key = (id(image), width, height)
    cached = _COVER_CACHE.get(key)
    if cached is not None and cached[0] is image:
        return cached[1]

    scale = max(width / image.width, height / image.height)
    scaled_w = max(1, round(image.width * scale))
    scaled_h = max(1, round(image.height * scale))
    scaled = image.resize((scaled_w, scaled_h), Image.LANCZOS)
    left = (scaled_w - width) // 2
    top = (scaled_h - height) // 2
    region = scaled.crop((left, top, left + width, top + height))

    if len(_COVER_CACHE) >= _COVER_CACHE_LIMIT:
        _COVER_CACHE.pop(next(iter(_COVER_CACHE)))
    _COVER_CACHE[key] = (image, region)
    return region


def render(
    surface: Image.Image,
    scenes: Sequence[Scene],
    scene_index: int,
    show_punchline: bool,
    assets: Optional[ImageAssets] = None,
) -> None:
    """Draw one full frame for ``scenes[scene_index]`` onto ``surface``."""
    if not 0 <= scene_index < len(scenes):
        raise IndexError(f"scene index {scene_index} out of range for {len(scenes)} scenes")

    W, H = surface.size
    scene = scenes[scene_index]
    frame = Image.new("RGBA", (W, H), BACKGROUND + (255,))
    draw = ImageDraw.Draw(frame)

    # Image region (top 60%)
    image_h = int(H * IMAGE_REGION_RATIO)
    image = assets.get(scene) if assets is not None else None
    if image is not None:
        frame.paste(_cover_fit(image, W, image_h), (0, 0))
    else:
        draw.rectangle([(0, 0), (W, image_h)], fill=PLACEHOLDER)
        font = _resolve_font(20)
        label = "Loading image..."
        width = draw.textlength(label, font=font)
        draw.text((W / 2 - width / 2, image_h / 2 - 10), label, font=font, fill=MUTED_TEXT)

    # Text area overlay (bottom 40% plus strip)
    text_y = image_h + OVERLAY_STRIP
    text_h = H - text_y
    overlay = Image.new("RGBA", (W, H), (0, 0, 0, 0))
    ImageDraw.Draw(overlay).rectangle([(0, image_h), (W, text_y + text_h)], fill=OVERLAY)
    frame.alpha_composite(overlay)
    draw = ImageDraw.Draw(frame)

    # Scene indicator dots, centered for any scene count
    dot_y = image_h + 16
    count = len(scenes)
    for i in range(count):
        cx = W / 2 + (i - (count - 1) / 2) * DOT_SPACING
        draw.ellipse(
            [(cx - DOT_RADIUS, dot_y - DOT_RADIUS), (cx + DOT_RADIUS, dot_y + DOT_RADIUS)],
            fill=DOT_ACTIVE if i == scene_index else DOT_INACTIVE,
        )

    max_width = W - TEXT_MARGIN
    setup_font = _resolve_font(26, bold=True)
    _draw_centered_lines(
        draw, wrap_text(draw, scene.setup, setup_font, max_width), W / 2, text_y + 16, setup_font, 32, SETUP_COLOR
    )

    if show_punchline:
        punch_font = _resolve_font(30, bold=True)
        _draw_centered_lines(
            draw,
            wrap_text(draw, scene.punchline, punch_font, max_width),
            W / 2,
            text_y + text_h / 2 + 10,
            punch_font,
            36,
            PUNCHLINE_COLOR,
        )

    counter_font = _resolve_font(14)
    draw.text((16, H - 24 - 14), f"Scene {scene_index + 1}/{count}", font=counter_font, fill=MUTED_TEXT)

    surface.paste(frame.convert(surface.mode), (0, 0))
