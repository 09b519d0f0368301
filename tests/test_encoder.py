import dataclasses
import struct
import zlib

import pytest

from conftest import GOLDEN_PNG
from decoder import decode_png
from encoder import CANONICAL_SETTINGS, EncodeSettings, encode_canonical, encode_pixels
from errors import EncodeError
from factories import filter_row, split_chunks
from pixels import PixelBuffer


def _gradient(width, height):
	return PixelBuffer(bytes(
		(x * 4 + y * 3 + c * 50) % 256 if c < 3 else 255
		for y in range(height) for x in range(width) for c in range(4)
	), width, height)


def _min_sum_filter(row, prev):
	# the usual "minimum sum of absolute differences" pick
	def cost(ft):
		return sum(b if b < 128 else 256 - b for b in filter_row(ft, row, prev, 4))
	return min(range(5), key=cost)


def test_golden_fixture(golden_pixels):
	assert encode_pixels(golden_pixels) == GOLDEN_PNG


def test_deterministic():
	pixels = _gradient(33, 17)
	assert encode_pixels(pixels) == encode_pixels(pixels)
	assert encode_canonical(bytearray(pixels.data), 33, 17) == encode_pixels(pixels)


@pytest.mark.parametrize("size", [(1, 1), (2, 3), (64, 64), (100, 7)])
def test_round_trip(size):
	pixels = _gradient(*size)
	assert decode_png(encode_pixels(pixels)) == pixels


def test_chunk_layout():
	chunks = split_chunks(encode_pixels(_gradient(40, 30)))
	assert [name for name, _ in chunks] == [b"IHDR", b"IDAT", b"IEND"]
	assert struct.unpack(">IIBBBBB", chunks[0][1]) == (40, 30, 8, 6, 0, 0, 0)
	assert chunks[2][1] == b""


def test_zlib_header_reflects_level_4():
	idat = split_chunks(encode_pixels(_gradient(5, 5)))[1][1]
	assert idat[:2] == b"\x78\x5e"


def test_every_scanline_uses_filter_none():
	pixels = _gradient(48, 12)
	prev = bytes(pixels.stride)
	heuristic = []
	for y in range(pixels.height):
		heuristic.append(_min_sum_filter(pixels.row(y), prev))
		prev = pixels.row(y)
	assert any(heuristic), "test image should favour real filters"

	idat = split_chunks(encode_pixels(pixels))[1][1]
	raw = zlib.decompress(idat)
	stride = 1 + pixels.stride
	assert len(raw) == stride * pixels.height
	assert [raw[y * stride] for y in range(pixels.height)] == [0] * pixels.height
	assert b"".join(raw[y*stride + 1:(y+1)*stride] for y in range(pixels.height)) == pixels.data


def test_no_colour_type_reduction():
	# opaque grey would fit in colour type 0, it must stay RGBA
	grey = PixelBuffer(bytes([v for i in range(9) for v in (i * 20,) * 3 + (255,)]), 3, 3)
	ihdr = split_chunks(encode_pixels(grey))[0][1]
	assert ihdr[8:10] == bytes([8, 6])


@pytest.mark.parametrize("length", [15, 17, 0])
def test_rejects_length_mismatch(length):
	with pytest.raises(EncodeError, match="needs 16"):
		encode_canonical(bytes(length), 2, 2)


@pytest.mark.parametrize("width, height", [(0, 1), (1, 0), (-2, -2), (2**31, 1)])
def test_rejects_bad_dimensions(width, height):
	with pytest.raises(EncodeError, match="dimensions"):
		encode_canonical(b"", width, height)


def test_compression_failure_is_an_encode_error(monkeypatch):
	def broken(*args, **kwargs):
		raise zlib.error("boom")
	monkeypatch.setattr(zlib, "compressobj", broken)
	with pytest.raises(EncodeError, match="boom"):
		encode_canonical(bytes(4), 1, 1)


def test_canonical_settings():
	assert CANONICAL_SETTINGS == EncodeSettings(
		compression_level=4,
		window_bits=15,
		mem_level=8,
		strategy=zlib.Z_DEFAULT_STRATEGY,
		filter_type=0,
		interlace_method=0,
		colour_type=6,
		bit_depth=8,
		auto_convert=False,
	)
	with pytest.raises(dataclasses.FrozenInstanceError):
		CANONICAL_SETTINGS.compression_level = 9


@pytest.mark.parametrize("params", [
	{"compression_level": 10},
	{"compression_level": -1},
	{"filter_type": 1},
	{"interlace_method": 1},
	{"colour_type": 2},
	{"bit_depth": 16},
	{"auto_convert": True},
])
def test_settings_reject_unsupported_values(params):
	with pytest.raises(ValueError):
		EncodeSettings(**params)


def test_settings_drive_the_output():
	pixels = _gradient(20, 20)
	stored = encode_pixels(pixels, EncodeSettings(compression_level=0))
	assert stored != encode_pixels(pixels)
	assert decode_png(stored) == pixels
