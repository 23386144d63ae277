from __future__ import annotations

from io import BytesIO
from pathlib import Path
from typing import Mapping, Optional, Tuple

from PIL import Image, ImageColor, ImageDraw, ImageFont

from embroidery_engine import PreviewState

PLACEHOLDER_TEXT = "Your name"

_NAMED_COLORS: dict[str, str] = {
    # Thread palette used by the demo catalog
    "Black": "#202124",
    "White": "#f5f5f5",
    "Gold": "#c9a227",
    "Silver": "#b8bcc2",
    "Navy": "#1f2a5a",
    "Red": "#b3261e",
    "Pink": "#e8a0b4",
    "Green": "#1e8e3e",
}

_FABRICS: dict[str, str] = {
    "Natural": "#efe6d2",
    "Black": "#2b2b2b",
    "Navy": "#27304d",
    "White": "#fafafa",
}


def _color(value: Optional[str], default: str = "#202124") -> Tuple[int, int, int]:
    """
    Convert a palette name or any CSS color to an RGB tuple; unreadable values use `default`.
    """
    v = (value or "").strip()
    if not v:
        v = default
    v = _NAMED_COLORS.get(v, v)
    try:
        rgb = ImageColor.getrgb(v)
    except ValueError:
        rgb = ImageColor.getrgb(default)
    return rgb[0], rgb[1], rgb[2]


def _clamp_int(name: str, value: int, *, min_value: int, max_value: int) -> int:
    if not isinstance(value, int):
        raise TypeError(f"{name} must be int (got {type(value).__name__})")
    return max(min_value, min(max_value, value))


def _encode_png(img: Image.Image) -> bytes:
    buf = BytesIO()
    img.save(buf, format="PNG", optimize=True)
    return buf.getvalue()


def _shade(rgb: Tuple[int, int, int], factor: float) -> Tuple[int, int, int]:
    f = max(0.0, min(1.0, float(factor)))
    r, g, b = rgb
    return (int(r * f), int(g * f), int(b * f))


def _first_family(font_family: Optional[str]) -> str:
    # CSS stacks look like "Brush Script MT, cursive"; the first family is the intended one.
    if not font_family:
        return ""
    return font_family.split(",")[0].strip().strip("'\"")


def _load_font(font_family: Optional[str], size: int, font_files: Mapping[str, Path]) -> ImageFont.ImageFont | ImageFont.FreeTypeFont:
    path = font_files.get(_first_family(font_family))
    if path is not None:
        try:
            return ImageFont.truetype(str(path), size=size)
        except OSError:
            pass
    return ImageFont.load_default(size=size)


def render_preview_png(
    preview: PreviewState,
    *,
    fabric: str = "Natural",
    canvas_px: Tuple[int, int] = (640, 240),
    font_files: Optional[Mapping[str, Path]] = None,
) -> bytes:
    """
    Render the live embroidery preview as PNG bytes.

    The name is drawn with the preview's `color` and `font-family` styles on a fabric swatch
    inside a stitched hoop outline. Output is deterministic for equal inputs, which keeps it
    cacheable across Streamlit reruns.
    """
    cw, ch = canvas_px
    cw = _clamp_int("canvas_width_px", int(cw), min_value=240, max_value=2400)
    ch = _clamp_int("canvas_height_px", int(ch), min_value=120, max_value=1600)

    bg = _color(_FABRICS.get(fabric, fabric), default=_FABRICS["Natural"])
    img = Image.new("RGB", (cw, ch), bg)
    d = ImageDraw.Draw(img)

    _draw_hoop(d, canvas_px=(cw, ch), stitch=_shade(bg, 0.7))

    text = preview.text.strip()
    if text:
        fill = _color(preview.style("color"))
    else:
        text = PLACEHOLDER_TEXT
        fill = _shade(bg, 0.6)

    font = _fit_font(d, text, preview.style("font-family"), max_width=int(cw * 0.8), max_size=int(ch * 0.4), font_files=font_files or {})
    left, top, right, bottom = d.textbbox((0, 0), text, font=font)
    x = (cw - (right - left)) // 2 - left
    y = (ch - (bottom - top)) // 2 - top
    d.text((x, y), text, font=font, fill=fill)
    return _encode_png(img)


def _fit_font(
    d: ImageDraw.ImageDraw,
    text: str,
    font_family: Optional[str],
    *,
    max_width: int,
    max_size: int,
    font_files: Mapping[str, Path],
) -> ImageFont.ImageFont | ImageFont.FreeTypeFont:
    # Shrink until long names fit inside the hoop.
    size = max(12, max_size)
    while True:
        font = _load_font(font_family, size, font_files)
        left, _, right, _ = d.textbbox((0, 0), text, font=font)
        if right - left <= max_width or size <= 12:
            return font
        size = max(12, int(size * 0.85))


def _draw_hoop(d: ImageDraw.ImageDraw, *, canvas_px: Tuple[int, int], stitch: Tuple[int, int, int]) -> None:
    cw, ch = canvas_px
    margin = 14
    box = [margin, margin, cw - margin - 1, ch - margin - 1]
    d.rounded_rectangle(box, radius=int(ch * 0.2), outline=stitch, width=2)

    # dashed stitch line just inside the hoop
    inner = 10
    x0, y0, x1, y1 = box[0] + inner, box[1] + inner, box[2] - inner, box[3] - inner
    dash, gap = 8, 6
    for x in range(x0, x1, dash + gap):
        d.line([(x, y0), (min(x + dash, x1), y0)], fill=stitch, width=1)
        d.line([(x, y1), (min(x + dash, x1), y1)], fill=stitch, width=1)
    for y in range(y0, y1, dash + gap):
        d.line([(x0, y), (x0, min(y + dash, y1))], fill=stitch, width=1)
        d.line([(x1, y), (x1, min(y + dash, y1))], fill=stitch, width=1)
