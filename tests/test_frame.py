from __future__ import annotations

import io

import pytest
from PIL import Image

from packshot_studio.assembly.frame import DecodeError, compute_placement, fit_to_frame


@pytest.mark.parametrize(
    "size,frame,bbox",
    [
        ((400, 200), 800, (0, 200, 800, 600)),
        ((200, 400), 800, (200, 0, 600, 800)),
        ((1000, 1000), 800, (0, 0, 800, 800)),
        # 10 / 3 scale: height rounds to 3, leftover 7 floors to top=3
        ((3, 1), 10, (0, 3, 10, 6)),
    ],
)
def test_output_is_square_and_content_centered(make_png, read_png, size, frame, bbox):
    out = read_png(fit_to_frame(make_png(size), frame))
    assert out.size == (frame, frame)
    assert out.mode == "RGBA"
    assert out.getchannel("A").getbbox() == bbox


def test_small_source_is_enlarged_to_fill_frame(make_png, read_png):
    out = read_png(fit_to_frame(make_png((10, 5)), 100))
    assert out.getchannel("A").getbbox() == (0, 25, 100, 75)


def test_canvas_outside_image_is_fully_transparent(make_png, read_png):
    out = read_png(fit_to_frame(make_png((100, 50)), 100))
    assert out.getpixel((0, 0)) == (0, 0, 0, 0)
    assert out.getpixel((99, 99)) == (0, 0, 0, 0)
    assert out.getpixel((50, 50))[3] == 255


def test_source_transparency_is_preserved(read_png):
    src = Image.new("RGBA", (100, 100), (0, 0, 0, 0))
    src.paste((10, 200, 10, 255), (50, 0, 100, 100))
    buf = io.BytesIO()
    src.save(buf, format="PNG")

    out = read_png(fit_to_frame(buf.getvalue(), 100))
    assert out.getpixel((10, 50))[3] == 0
    assert out.getpixel((75, 50)) == (10, 200, 10, 255)


def test_rgb_jpeg_input_is_accepted(read_png):
    buf = io.BytesIO()
    Image.new("RGB", (60, 30), (255, 255, 255)).save(buf, format="JPEG")
    out = read_png(fit_to_frame(buf.getvalue(), 60))
    assert out.size == (60, 60)
    assert out.getchannel("A").getbbox() == (0, 15, 60, 45)


def test_repeated_calls_are_byte_identical(make_png):
    data = make_png((123, 77))
    assert fit_to_frame(data, 200) == fit_to_frame(data, 200)


def test_undecodable_input_raises_decode_error():
    with pytest.raises(DecodeError):
        fit_to_frame(b"definitely not an image", 800)


def test_compute_placement_rounds_half_up():
    placement = compute_placement(2, 5, 3)
    assert (placement.new_width, placement.new_height) == (1, 3)
    placement = compute_placement(5, 2, 3)
    assert (placement.new_width, placement.new_height) == (3, 1)
    # 2 * 0.75 = 1.5 rounds up
    placement = compute_placement(2, 4, 3)
    assert (placement.new_width, placement.new_height, placement.left, placement.top) == (2, 3, 0, 0)


def test_compute_placement_rejects_bad_frame():
    with pytest.raises(ValueError):
        compute_placement(10, 10, 0)


@pytest.mark.parametrize("mode", ["I;16", "I"])
def test_sixteen_bit_grey_is_scaled_not_clipped(read_png, mode):
    buf = io.BytesIO()
    Image.new(mode, (40, 20), 40000).save(buf, format="PNG")

    out = read_png(fit_to_frame(buf.getvalue(), 80))
    r, g, b, a = out.getpixel((40, 40))
    # 40000 / 257 ~= 155.6
    assert abs(r - 155) <= 2
    assert r == g == b
    assert a == 255
    assert out.getchannel("A").getbbox() == (0, 20, 80, 60)


def test_palette_input_with_transparency(read_png):
    src = Image.new("P", (20, 20), 0)
    src.putpalette([0, 0, 0, 255, 0, 0] + [0] * 762)
    src.paste(1, (10, 0, 20, 20))
    buf = io.BytesIO()
    src.save(buf, format="PNG", transparency=0)

    out = read_png(fit_to_frame(buf.getvalue(), 20))
    assert out.getpixel((5, 10))[3] == 0
    assert out.getpixel((15, 10)) == (255, 0, 0, 255)
