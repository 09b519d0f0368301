import io
import zlib
from dataclasses import dataclass

from chunks import PNG_MAGIC, write_png_chunk
from errors import EncodeError

FILTER_NONE = 0
COLOUR_RGBA = 6
MAX_CHUNK_LEN = 2**31 - 1


@dataclass(frozen=True)
class EncodeSettings:
	"""Every knob that influences the encoded bytes.

	Changing any of these changes the output, and with it the hash."""

	compression_level: int = 4
	window_bits: int = 15 # plain zlib wrapper, 32K window
	mem_level: int = 8
	strategy: int = zlib.Z_DEFAULT_STRATEGY
	filter_type: int = FILTER_NONE # on every scanline, no adaptive filter selection
	interlace_method: int = 0
	colour_type: int = COLOUR_RGBA
	bit_depth: int = 8
	auto_convert: bool = False # never reduce to palette/grey even when the pixels would allow it

	def __post_init__(self):
		if not 0 <= self.compression_level <= 9:
			raise ValueError(f"compression level must be 0..9, got {self.compression_level}")
		if self.filter_type != FILTER_NONE:
			raise ValueError("only filter type 0 (None) is supported")
		if self.interlace_method != 0:
			raise ValueError("interlaced output is not supported")
		if self.colour_type != COLOUR_RGBA or self.bit_depth != 8:
			raise ValueError("output is always 8-bit RGBA")
		if self.auto_convert:
			raise ValueError("colour type reduction is not supported")


# the same parameters Minecraft's PNG writer uses
CANONICAL_SETTINGS = EncodeSettings()


def encode_ihdr(width, height, settings):
	ihdr = b""
	ihdr += width.to_bytes(4, "big")
	ihdr += height.to_bytes(4, "big")
	ihdr += settings.bit_depth.to_bytes(1, "big")
	ihdr += settings.colour_type.to_bytes(1, "big")
	ihdr += (0).to_bytes(1, "big") # compression method
	ihdr += (0).to_bytes(1, "big") # filter method
	ihdr += settings.interlace_method.to_bytes(1, "big")
	return ihdr


def filter_scanlines(data, width, height, settings):
	stride = 4 * width
	filter_byte = settings.filter_type.to_bytes(1, "big")
	return b"".join(
		filter_byte + data[offset:offset+stride]
		for offset in range(0, stride * height, stride)
	)


def compress_scanlines(scanlines, settings):
	# one-shot compression, so the output can't depend on how the input was fed in
	try:
		c = zlib.compressobj(
			level=settings.compression_level,
			method=zlib.DEFLATED,
			wbits=settings.window_bits,
			memLevel=settings.mem_level,
			strategy=settings.strategy,
		)
		return c.compress(scanlines) + c.flush(zlib.Z_FINISH)
	except zlib.error as e:
		raise EncodeError(f"compression failed: {e}") from e


def encode_canonical(data, width, height, settings=CANONICAL_SETTINGS) -> bytes:
	"""Encode RGBA8 pixel data as a PNG, byte-for-byte determined by `settings`.

	Output is signature, IHDR, a single IDAT and IEND; nothing else."""
	if not 0 < width <= MAX_CHUNK_LEN or not 0 < height <= MAX_CHUNK_LEN:
		raise EncodeError(f"invalid image dimensions {width}x{height}")
	if len(data) != width * height * 4:
		raise EncodeError(f"buffer holds {len(data)} bytes, {width}x{height} RGBA needs {width * height * 4}")

	idat = compress_scanlines(filter_scanlines(bytes(data), width, height, settings), settings)
	if len(idat) > MAX_CHUNK_LEN:
		raise EncodeError(f"compressed image data too large for one IDAT chunk ({len(idat)} bytes)")

	out = io.BytesIO()
	out.write(PNG_MAGIC)
	write_png_chunk(out, b"IHDR", encode_ihdr(width, height, settings))
	write_png_chunk(out, b"IDAT", idat)
	write_png_chunk(out, b"IEND", b"")
	return out.getvalue()


def encode_pixels(pixels, settings=CANONICAL_SETTINGS) -> bytes:
	return encode_canonical(pixels.data, pixels.width, pixels.height, settings)
