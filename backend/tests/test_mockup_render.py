import io
from datetime import date
from types import SimpleNamespace

from PIL import Image

from painel.utils.mockup_render import (
    cover_crop,
    output_filename,
    photo_index,
    render_canvas,
    text_value,
)


def _png(size, color):
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format="PNG")
    return buf.getvalue()


def _area(**kw):
    data = {
        "kind": "image",
        "field_key": "fotocliente[1]",
        "x": 0,
        "y": 0,
        "width": 10,
        "height": 10,
        "rotation": 0,
        "color": None,
        "font_family": None,
        "font_size": None,
        "font_weight": None,
        "text_align": None,
    }
    data.update(kw)
    return SimpleNamespace(**data)


def _close(pixel, expected, tol=8):
    return all(abs(a - b) <= tol for a, b in zip(pixel, expected))


def _pedido(**kw):
    data = {
        "numero_pedido": "1001",
        "codigo_produto": "CAN-01",
        "data_pedido": date(2024, 3, 5),
        "observacao": None,
        "fotos_cliente": [],
    }
    data.update(kw)
    return SimpleNamespace(**data)


def test_photo_index_and_text_value():
    assert photo_index("fotocliente[1]") == 0
    assert photo_index("fotocliente[3]") == 2
    assert photo_index("qualquer") == 0
    pedido = _pedido()
    assert text_value("data_pedido", pedido) == "05/03/2024"
    assert text_value("numero_pedido", pedido) == "1001"
    assert text_value("observacao", pedido) == ""
    assert text_value("nome_cliente", pedido) == ""


def test_cover_crop_keeps_target_size():
    wide = Image.new("RGB", (400, 100), "red")
    out = cover_crop(wide, 50, 50)
    assert out.size == (50, 50)


def test_render_places_photos_in_their_areas():
    photos = {"a": _png((40, 40), (255, 0, 0)), "b": _png((40, 20), (0, 0, 255))}
    pedido = _pedido(fotos_cliente=["a", "b"])
    areas = [
        _area(field_key="fotocliente[1]", x=10, y=10, width=20, height=20),
        _area(field_key="fotocliente[2]", x=60, y=10, width=30, height=20),
        _area(field_key="fotocliente[5]", x=10, y=60, width=20, height=20),
    ]
    png = render_canvas(_png((100, 100), (255, 255, 255)), areas, pedido, lambda url: photos[url])
    with Image.open(io.BytesIO(png)) as out:
        assert out.format == "PNG"
        assert tuple(round(v) for v in out.info["dpi"]) == (300, 300)
        rgb = out.convert("RGB")
        assert _close(rgb.getpixel((20, 20)), (255, 0, 0))
        assert _close(rgb.getpixel((75, 20)), (0, 0, 255))
        # missing photo index leaves the base untouched
        assert rgb.getpixel((20, 70)) == (255, 255, 255)


def test_render_draws_text_areas():
    areas = [_area(kind="text", field_key="numero_pedido", x=0, y=0, width=100, height=40, font_size=30, color="#000000")]
    png = render_canvas(_png((100, 50), (255, 255, 255)), areas, _pedido(), lambda url: b"")
    with Image.open(io.BytesIO(png)) as out:
        rgb = out.convert("RGB")
        pixels = [rgb.getpixel((x, y)) for x in range(100) for y in range(40)]
    assert any(p != (255, 255, 255) for p in pixels)


def test_rotated_area_stays_centered():
    photo = _png((20, 20), (0, 255, 0))
    areas = [_area(x=40, y=40, width=20, height=20, rotation=45)]
    png = render_canvas(_png((100, 100), (255, 255, 255)), areas, _pedido(fotos_cliente=["p"]), lambda url: photo)
    with Image.open(io.BytesIO(png)) as out:
        rgb = out.convert("RGB")
        assert _close(rgb.getpixel((50, 50)), (0, 255, 0))
        assert rgb.getpixel((5, 5)) == (255, 255, 255)


def test_areas_outside_the_canvas_are_clipped():
    photo = _png((20, 20), (255, 0, 0))
    areas = [
        _area(x=-500, y=10, width=100, height=100),
        _area(x=10, y=-300, width=50, height=50),
        _area(x=250, y=250, width=20, height=20),
        # partly visible: only the overlapping corner is drawn
        _area(x=-10, y=-10, width=30, height=30),
    ]
    png = render_canvas(_png((200, 200), (255, 255, 255)), areas, _pedido(fotos_cliente=["p"]), lambda url: photo)
    with Image.open(io.BytesIO(png)) as out:
        rgb = out.convert("RGB")
        assert _close(rgb.getpixel((5, 5)), (255, 0, 0))
        assert rgb.getpixel((100, 100)) == (255, 255, 255)


def test_output_filename():
    assert output_filename("1001", "molde", "frente", 1700000000000) == "molde/1001_molde_frente_1700000000000.png"
