"""Render multi-line text (ASCII art) into a fixed-style frame image.

Layout is computed once and shared by the SVG markup and the Pillow raster,
so both describe the same canvas, x offset and baselines.
"""

from __future__ import annotations

import io
import math
import re
from dataclasses import dataclass
from functools import lru_cache

from PIL import Image, ImageDraw, ImageFont

from .errors import UnsupportedAspectRatioError

FONT_SIZE = 14
LINE_HEIGHT = FONT_SIZE + 6
PADDING = 20
MIN_WIDTH = 800
CHAR_WIDTH_FACTOR = 0.6
MIN_X = 10
FONT_FAMILY = "monospace"

WIDE_ASPECT_RATIO = 1.91
SQUARE_ASPECT_RATIO = 1.0

# Real line breaks and the escaped two-character "\n" marker both split lines.
_LINE_SPLIT_RE = re.compile(r"\r?\n|\\n")
_TRAILING_BREAK_RE = re.compile(r"(?:\r?\n|\\n)\Z")

_MONOSPACE_FONT_FILES = ("DejaVuSansMono.ttf", "LiberationMono-Regular.ttf", "Menlo.ttc")


@dataclass(frozen=True)
class TextLayout:
    lines: tuple[str, ...]
    width: float
    height: float
    x: float

    def baseline(self, index: int) -> float:
        return PADDING + index * LINE_HEIGHT


def split_lines(text: str) -> list[str]:
    # A single trailing line break ends the last line rather than opening a new one.
    return _LINE_SPLIT_RE.split(_TRAILING_BREAK_RE.sub("", text, count=1))


def escape_xml(value: str) -> str:
    return (
        value.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
        .replace("'", "&#039;")
    )


def canvas_size(line_count: int, aspect_ratio: float = WIDE_ASPECT_RATIO) -> tuple[float, float]:
    """Return (width, height) for a block of `line_count` lines."""
    text_height = line_count * LINE_HEIGHT + PADDING * 2
    if aspect_ratio == WIDE_ASPECT_RATIO:
        return max(text_height * aspect_ratio, MIN_WIDTH), text_height
    if aspect_ratio == SQUARE_ASPECT_RATIO:
        side = max(text_height, MIN_WIDTH)
        return side, side
    raise UnsupportedAspectRatioError(aspect_ratio)


def compute_layout(text: str, aspect_ratio: float = WIDE_ASPECT_RATIO) -> TextLayout:
    lines = split_lines(text)
    width, height = canvas_size(len(lines), aspect_ratio)
    # Width estimate uses the escaped length, so entity-heavy lines count wider.
    escaped = [escape_xml(line) for line in lines]
    block_width = max(len(line) for line in escaped) * FONT_SIZE * CHAR_WIDTH_FACTOR
    x = max((width - block_width) / 2, MIN_X)
    return TextLayout(lines=tuple(lines), width=width, height=height, x=x)


def layout_to_svg(layout: TextLayout) -> str:
    x = _fmt(layout.x)
    spans = "".join(
        f'<tspan x="{x}" dy="{0 if index == 0 else LINE_HEIGHT}">{escape_xml(line)}</tspan>'
        for index, line in enumerate(layout.lines)
    )
    return (
        f'<svg width="{_fmt(layout.width)}" height="{_fmt(layout.height)}" '
        'xmlns="http://www.w3.org/2000/svg">'
        '<rect width="100%" height="100%" fill="white" />'
        "<style>"
        f".text-content {{ font-family: {FONT_FAMILY}; font-size: {FONT_SIZE}px; "
        "fill: black; white-space: pre; }"
        "</style>"
        f'<text x="{x}" y="{PADDING}" class="text-content">{spans}</text>'
        "</svg>"
    )


def render_svg(text: str, aspect_ratio: float = WIDE_ASPECT_RATIO) -> str:
    return layout_to_svg(compute_layout(text, aspect_ratio))


def rasterize(layout: TextLayout) -> bytes:
    """Draw the layout with Pillow and encode it as PNG."""
    size = (math.ceil(layout.width), math.ceil(layout.height))
    image = Image.new("RGB", size, "white")
    draw = ImageDraw.Draw(image)
    font = _load_font()
    for index, line in enumerate(layout.lines):
        if not line:
            continue
        # Pillow positions by top edge; SVG y is the baseline.
        top = layout.baseline(index) - FONT_SIZE
        draw.text((layout.x, top), line, fill="black", font=font)
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def render_png(text: str, aspect_ratio: float = WIDE_ASPECT_RATIO) -> bytes:
    return rasterize(compute_layout(text, aspect_ratio))


@lru_cache(maxsize=1)
def _load_font() -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    for name in _MONOSPACE_FONT_FILES:
        try:
            return ImageFont.truetype(name, FONT_SIZE)
        except OSError:
            continue
    return ImageFont.load_default(size=FONT_SIZE)


def _fmt(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return f"{value:.2f}".rstrip("0").rstrip(".")
