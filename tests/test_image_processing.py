import numpy as np
import pytest

from omr_scorer import image_processing
from omr_scorer.errors import DecodeError, RenderError
from omr_scorer.image_processing import (
    PixelBuffer,
    apply_threshold,
    encode_png,
    load_image,
    load_image_bytes,
    preprocess_for_omr,
    sniff_mime_type,
    to_grayscale,
)

from .conftest import encode, make_buffer


def random_buffer(width=37, height=23, seed=0):
    rng = np.random.default_rng(seed)
    return PixelBuffer.from_array(rng.integers(0, 256, size=(height, width, 4), dtype=np.uint8))


def test_pixel_buffer_rejects_wrong_shape():
    with pytest.raises(ValueError):
        PixelBuffer(width=3, height=2, data=np.zeros((2, 3, 3), dtype=np.uint8))


def test_grayscale_uses_truncated_mean_and_keeps_alpha():
    buffer = PixelBuffer.from_array(np.array([[[10, 20, 31, 77]]], dtype=np.uint8))
    to_grayscale(buffer)
    assert buffer.data[0, 0].tolist() == [20, 20, 20, 77]


def test_grayscale_is_idempotent():
    once = to_grayscale(random_buffer())
    twice = to_grayscale(once.copy())
    assert np.array_equal(once.data, twice.data)


def test_grayscale_is_deterministic():
    a = to_grayscale(random_buffer(seed=3))
    b = to_grayscale(random_buffer(seed=3))
    assert np.array_equal(a.data, b.data)


def test_threshold_output_is_binary():
    buffer = apply_threshold(to_grayscale(random_buffer()))
    assert set(np.unique(buffer.data).tolist()) <= {0, 255}


def test_threshold_cutoff_is_strict():
    data = np.array([[[149, 149, 149, 255], [150, 150, 150, 255]]], dtype=np.uint8)
    buffer = apply_threshold(PixelBuffer.from_array(data), threshold=150)
    assert buffer.data[0, 0, :3].tolist() == [0, 0, 0]
    assert buffer.data[0, 1, :3].tolist() == [255, 255, 255]


def test_preprocess_leaves_input_untouched():
    original = random_buffer()
    before = original.data.copy()
    binarized, png = preprocess_for_omr(original)
    assert np.array_equal(original.data, before)
    assert binarized.data is not original.data
    assert png.startswith(b'\x89PNG')


def test_processed_png_decodes_to_binarized_buffer():
    binarized, png = preprocess_for_omr(random_buffer())
    assert np.array_equal(load_image_bytes(png).data, binarized.data)


def test_load_converts_bgr_to_rgba():
    bgr = np.zeros((4, 6, 3), dtype=np.uint8)
    bgr[:, :] = (255, 0, 0)  # blue
    buffer = load_image_bytes(encode(bgr))
    assert (buffer.width, buffer.height) == (6, 4)
    assert buffer.data[0, 0].tolist() == [0, 0, 255, 255]


def test_load_grayscale_image():
    gray = np.full((5, 5), 90, dtype=np.uint8)
    buffer = load_image_bytes(encode(gray), mime_type='image/png')
    assert buffer.data[2, 2].tolist() == [90, 90, 90, 255]


def test_load_keeps_alpha():
    bgra = np.zeros((2, 2, 4), dtype=np.uint8)
    bgra[:, :] = (0, 0, 255, 128)
    buffer = load_image_bytes(encode(bgra))
    assert buffer.data[0, 0].tolist() == [255, 0, 0, 128]


@pytest.mark.parametrize('payload', [b'', b'not an image at all', b'\x89PNG\r\n\x1a\ntruncated'])
def test_undecodable_bytes_raise_decode_error(payload):
    with pytest.raises(DecodeError):
        load_image_bytes(payload)


def test_non_image_mime_type_is_rejected():
    with pytest.raises(DecodeError):
        load_image_bytes(encode(np.zeros((2, 2), dtype=np.uint8)), mime_type='application/pdf')


def test_load_image_reads_file(tmp_path):
    path = tmp_path / 'sheet.png'
    path.write_bytes(encode(np.full((3, 4, 3), 200, dtype=np.uint8)))
    assert load_image(str(path)).width == 4


def test_load_image_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_image(str(tmp_path / 'missing.png'))


def test_sniff_mime_type():
    assert sniff_mime_type(encode(np.zeros((2, 2), dtype=np.uint8))) == 'image/png'
    assert sniff_mime_type(encode(np.zeros((8, 8, 3), dtype=np.uint8), '.jpg')) == 'image/jpeg'
    assert sniff_mime_type(b'RIFF\x00\x00\x00\x00WEBPVP8 ') == 'image/webp'
    assert sniff_mime_type(b'%PDF-1.7') is None


def test_encode_failure_raises_render_error(monkeypatch):
    monkeypatch.setattr(image_processing.cv2, 'imencode', lambda ext, img: (False, None))
    with pytest.raises(RenderError):
        encode_png(make_buffer(2, 2))


def test_to_bgr_round_trips_colours():
    bgr = np.zeros((1, 1, 3), dtype=np.uint8)
    bgr[0, 0] = (10, 20, 30)
    buffer = load_image_bytes(encode(bgr))
    assert image_processing.to_bgr(buffer)[0, 0].tolist() == [10, 20, 30]
