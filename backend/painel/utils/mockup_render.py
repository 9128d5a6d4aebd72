"""Pillow rendering of mockup canvases.

A canvas is a base image plus a list of areas. `image` areas receive a
client photo cropped to the area's aspect ratio; `text` areas receive a
pedido field. Output is a 300 DPI PNG.
"""

from __future__ import annotations

import io
import math
import re
from typing import Callable, List, Optional

from PIL import Image, ImageColor, ImageDraw, ImageFont

from .phones import format_date_br

OUTPUT_DPI = (300, 300)
TEXT_FIELDS = ("numero_pedido", "codigo_produto", "data_pedido", "observacao")
_PHOTO_KEY = re.compile(r"fotocliente\[(\d+)\]")


def resolve_font(size: int, bold: bool = False, family: Optional[str] = None):
    candidates = []
    if family:
        base = family.split(",")[0].strip().strip("'\"").replace(" ", "")
        candidates += [f"{base}-Bold.ttf", f"{base}bd.ttf"] if bold else [f"{base}.ttf"]
    candidates += ["arialbd.ttf", "DejaVuSans-Bold.ttf"] if bold else ["arial.ttf", "DejaVuSans.ttf"]
    for candidate in candidates:
        try:
            return ImageFont.truetype(candidate, size=size)
        except OSError:
            continue
    return ImageFont.load_default()


def photo_index(field_key: Optional[str]) -> int:
    """Zero-based photo index from `fotocliente[N]`; anything else is the first photo."""
    match = _PHOTO_KEY.search(field_key or "")
    return int(match.group(1)) - 1 if match else 0


def text_value(field_key: str, pedido) -> str:
    if field_key == "data_pedido":
        return format_date_br(getattr(pedido, "data_pedido", None))
    if field_key in TEXT_FIELDS:
        return str(getattr(pedido, field_key, None) or "")
    return ""


def cover_crop(photo: Image.Image, width: int, height: int) -> Image.Image:
    """Centre-crop `photo` to the target aspect ratio and resize it."""
    width, height = max(1, width), max(1, height)
    src_w, src_h = photo.size
    target = width / height
    if src_w / src_h > target:
        crop_w = src_h * target
        left = (src_w - crop_w) / 2
        box = (left, 0, left + crop_w, src_h)
    else:
        crop_h = src_w / target
        top = (src_h - crop_h) / 2
        box = (0, top, src_w, top + crop_h)
    return photo.crop(tuple(int(round(v)) for v in box)).resize((width, height), Image.LANCZOS)


def _paste_rotated(base: Image.Image, layer: Image.Image, area, rotation: float) -> None:
    if rotation:
        # canvas rotation is clockwise, PIL's is counter-clockwise
        layer = layer.rotate(-rotation, expand=True, resample=Image.BICUBIC)
        cx = area.x + area.width / 2
        cy = area.y + area.height / 2
        pos = (int(round(cx - layer.width / 2)), int(round(cy - layer.height / 2)))
    else:
        pos = (int(round(area.x)), int(round(area.y)))
    # fully outside the canvas: nothing to draw
    if pos[0] + layer.width <= 0 or pos[1] + layer.height <= 0 or pos[0] >= base.width or pos[1] >= base.height:
        return
    base.alpha_composite(layer, dest=(max(pos[0], 0), max(pos[1], 0)), source=(max(-pos[0], 0), max(-pos[1], 0)))


def _parse_color(value: Optional[str]):
    try:
        return ImageColor.getcolor(value or "#000000", "RGBA")
    except ValueError:
        return (0, 0, 0, 255)


def _is_bold(weight: Optional[str]) -> bool:
    w = (weight or "").lower()
    return w == "bold" or (w.isdigit() and int(w) >= 600)


def draw_photo(base: Image.Image, area, photo: Image.Image) -> None:
    fitted = cover_crop(photo.convert("RGBA"), int(round(area.width)), int(round(area.height)))
    _paste_rotated(base, fitted, area, area.rotation or 0)


def draw_text(base: Image.Image, area, text: str) -> None:
    size = int(area.font_size or 16)
    font = resolve_font(size, _is_bold(area.font_weight), area.font_family)
    width = max(1, int(round(area.width)))
    height = max(int(round(area.height)), int(math.ceil(size * 1.4)), 1)
    layer = Image.new("RGBA", (width, height), (0, 0, 0, 0))
    draw = ImageDraw.Draw(layer)
    left, top, right, bottom = draw.textbbox((0, 0), text, font=font)
    text_w = right - left
    align = area.text_align or "left"
    if align == "center":
        x = (width - text_w) / 2
    elif align == "right":
        x = width - text_w
    else:
        x = 0
    # baseline sits one font size below the area top
    y = max(0, size - bottom)
    draw.text((x - left, y), text, font=font, fill=_parse_color(area.color))
    _paste_rotated(base, layer, area, area.rotation or 0)


def render_canvas(
    base_bytes: bytes,
    areas: List,
    pedido,
    load_photo: Callable[[str], bytes],
) -> bytes:
    """Compose one canvas and return PNG bytes at 300 DPI.

    `areas` are drawn in order (callers pass them sorted by `z_index`).
    Missing photos and empty text fields are skipped.
    """
    with Image.open(io.BytesIO(base_bytes)) as src:
        canvas = src.convert("RGBA")
    fotos = list(getattr(pedido, "fotos_cliente", None) or [])
    for area in areas:
        if area.kind == "image":
            idx = photo_index(area.field_key)
            if idx < 0 or idx >= len(fotos):
                continue
            with Image.open(io.BytesIO(load_photo(fotos[idx]))) as photo:
                draw_photo(canvas, area, photo)
        elif area.kind == "text":
            value = text_value(area.field_key, pedido)
            if value:
                draw_text(canvas, area, value)
    buf = io.BytesIO()
    canvas.save(buf, format="PNG", dpi=OUTPUT_DPI)
    return buf.getvalue()


def output_filename(numero_pedido: str, tipo: str, canvas_nome: str, timestamp_ms: int) -> str:
    """Storage path of a generated image: `{tipo}/{numero}_{tipo}_{canvas}_{ts}.png`."""
    return f"{tipo}/{numero_pedido}_{tipo}_{canvas_nome}_{timestamp_ms}.png"
