from __future__ import annotations

import re
from functools import lru_cache
from pathlib import Path
from typing import Iterable, Sequence, Tuple

import numpy as np
from PIL import Image, ImageDraw, ImageFont, ImageOps

from invitation_service.models.domain import MediaElement, TextElement

# Template coordinates are authored against this frame size.
DESIGN_SIZE = (1920, 1080)
DEFAULT_COLOR = (102, 126, 234)
FALLBACK_GRADIENT = ("#2d3436", "#636e72")
IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".webp")
VIDEO_EXTENSIONS = (".mp4", ".mov", ".webm")

_HEX = re.compile(r"^#?([0-9a-fA-F]{2})([0-9a-fA-F]{2})([0-9a-fA-F]{2})$")
_ANCHORS = {"left": "la", "center": "ma", "right": "ra"}

Size = Tuple[int, int]
Box = Tuple[int, int, int, int]


def parse_color(value: str) -> Tuple[int, int, int]:
    match = _HEX.match((value or "").strip())
    if not match:
        return DEFAULT_COLOR
    return tuple(int(part, 16) for part in match.groups())  # type: ignore[return-value]


def solid_frame(size: Size, color: str) -> Image.Image:
    return Image.new("RGB", size, parse_color(color))


def gradient_frame(size: Size, colors: Sequence[str]) -> Image.Image:
    """Vertical gradient through evenly spaced color stops."""
    width, height = size
    stops = np.array([parse_color(color) for color in colors] or [DEFAULT_COLOR], dtype=np.float32)
    if len(stops) == 1:
        return Image.new("RGB", size, tuple(int(c) for c in stops[0]))
    positions = np.linspace(0.0, 1.0, len(stops))
    rows = np.linspace(0.0, 1.0, height)
    column = np.stack([np.interp(rows, positions, stops[:, channel]) for channel in range(3)], axis=1)
    frame = np.repeat(column[:, np.newaxis, :], width, axis=1)
    return Image.fromarray(frame.round().astype(np.uint8))


def themed_frame(size: Size, path: Path) -> Image.Image:
    with Image.open(path) as source:
        return ImageOps.fit(source.convert("RGB"), size)


def find_theme_asset(themes_dir: Path, theme: str, extensions: Iterable[str]) -> Path | None:
    for extension in extensions:
        candidate = Path(themes_dir) / f"{theme}{extension}"
        if candidate.is_file():
            return candidate
    return None


def scale_box(element: MediaElement, size: Size) -> Box:
    scale_x = size[0] / DESIGN_SIZE[0]
    scale_y = size[1] / DESIGN_SIZE[1]
    return (
        round(element.x * scale_x),
        round(element.y * scale_y),
        max(1, round(element.width * scale_x)),
        max(1, round(element.height * scale_y)),
    )


@lru_cache(maxsize=64)
def load_font(family: str, size: int, fonts_dir: str) -> ImageFont.ImageFont | ImageFont.FreeTypeFont:
    slug = family.replace(" ", "")
    names = (family, slug, family.lower().replace(" ", "-"))
    for name in names:
        for extension in (".ttf", ".otf"):
            candidate = Path(fonts_dir) / f"{name}{extension}"
            if candidate.is_file():
                return ImageFont.truetype(str(candidate), size)
    try:
        return ImageFont.truetype(f"{slug}.ttf", size)
    except OSError:
        return ImageFont.load_default(size=size)


def wrap_text(draw: ImageDraw.ImageDraw, text: str, font, max_width: float) -> str:
    lines = []
    for paragraph in text.splitlines() or [""]:
        words = paragraph.split(" ")
        current = words[0]
        for word in words[1:]:
            candidate = f"{current} {word}"
            if draw.textlength(candidate, font=font) <= max_width:
                current = candidate
            else:
                lines.append(current)
                current = word
        lines.append(current)
    return "\n".join(lines)


def draw_text(layer: Image.Image, element: TextElement, text: str, fonts_dir: Path) -> None:
    if not text.strip():
        return
    size = layer.size
    scale_x = size[0] / DESIGN_SIZE[0]
    scale_y = size[1] / DESIGN_SIZE[1]
    font_size = max(8, round(element.font_size * min(scale_x, scale_y)))
    font = load_font(element.font_family, font_size, str(fonts_dir))
    draw = ImageDraw.Draw(layer)
    if element.max_width:
        text = wrap_text(draw, text, font, element.max_width * scale_x)
    draw.multiline_text(
        (round(element.x * scale_x), round(element.y * scale_y)),
        text,
        font=font,
        fill=parse_color(element.color) + (255,),
        anchor=_ANCHORS[element.align],
        align=element.align,
    )


def paste_image(layer: Image.Image, path: Path, box: Box) -> None:
    x, y, width, height = box
    with Image.open(path) as source:
        fitted = ImageOps.fit(source.convert("RGBA"), (width, height))
    layer.paste(fitted, (x, y), fitted)
