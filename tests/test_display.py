# tests/test_display.py

from main import W, H, Letterbox, _lerp_color, _shade


def test_letterbox_keeps_aspect_and_centres_canvas() -> None:
    lb = Letterbox()
    lb.fit((1920, 1080))

    # Height is the tight side: 1080 / 900 = 1.2
    assert lb.size == (1320, 1080)
    assert lb.offset == (300, 0)


def test_letterbox_maps_window_points_back_to_canvas() -> None:
    lb = Letterbox()
    lb.fit((1920, 1080))

    assert lb.to_logical((300 + 660, 540)) == (550, 450)
    # Points on the bars clamp to the canvas edge.
    assert lb.to_logical((0, 0)) == (0, 0)
    assert lb.to_logical((1919, 1079)) == (W - 1, H - 1)


def test_letterbox_at_native_size_is_identity() -> None:
    lb = Letterbox()
    lb.fit((W, H))

    assert lb.size == (W, H)
    assert lb.offset == (0, 0)
    assert lb.to_logical((123, 456)) == (123, 456)


def test_color_helpers_clamp() -> None:
    assert _lerp_color((0, 0, 0), (200, 100, 50), 0.5) == (100, 50, 25)
    assert _lerp_color((0, 0, 0), (200, 100, 50), 2.0) == (200, 100, 50)
    assert _shade((200, 100, 10), 2.0) == (255, 200, 20)
    assert _shade((200, 100, 10), 0.0) == (0, 0, 0)
