import struct
import sys
import zlib
from dataclasses import dataclass

from chunks import iter_png_chunks, is_critical
from errors import DecodeError
from pixels import PixelBuffer

COLOUR_GREY = 0
COLOUR_RGB = 2
COLOUR_PALETTE = 3
COLOUR_GREY_ALPHA = 4
COLOUR_RGBA = 6

CHANNELS = {
	COLOUR_GREY: 1,
	COLOUR_RGB: 3,
	COLOUR_PALETTE: 1,
	COLOUR_GREY_ALPHA: 2,
	COLOUR_RGBA: 4,
}

ALLOWED_BIT_DEPTHS = {
	COLOUR_GREY: (1, 2, 4, 8, 16),
	COLOUR_RGB: (8, 16),
	COLOUR_PALETTE: (1, 2, 4, 8),
	COLOUR_GREY_ALPHA: (8, 16),
	COLOUR_RGBA: (8, 16),
}

MAX_DIMENSION = 2**31 - 1

# (x start, y start, x step, y step) of the seven Adam7 passes
ADAM7_PASSES = (
	(0, 0, 8, 8),
	(4, 0, 8, 8),
	(0, 4, 4, 8),
	(2, 0, 4, 4),
	(0, 2, 2, 4),
	(1, 0, 2, 2),
	(0, 1, 1, 2),
)


def _unpack_table(bit_depth):
	# byte -> one byte per packed sample, most significant bits first
	per_byte = 8 // bit_depth
	mask = (1 << bit_depth) - 1
	return [
		bytes((b >> (8 - bit_depth * (i + 1))) & mask for i in range(per_byte))
		for b in range(256)
	]


def _grey_scale_table(bit_depth):
	highest = (1 << bit_depth) - 1
	return bytes(v * 255 // highest if v <= highest else 0 for v in range(256))


_UNPACK = {d: _unpack_table(d) for d in (1, 2, 4)}
_GREY_SCALE = {d: _grey_scale_table(d) for d in (1, 2, 4)}


@dataclass(frozen=True)
class PngHeader:
	width: int
	height: int
	bit_depth: int
	colour_type: int
	compression_method: int = 0
	filter_method: int = 0
	interlace_method: int = 0

	@classmethod
	def parse(cls, body):
		if len(body) != 13:
			raise DecodeError(f"IHDR must be 13 bytes long, got {len(body)}")
		header = cls(*struct.unpack(">IIBBBBB", body))
		header.validate()
		return header

	def validate(self):
		if not 0 < self.width <= MAX_DIMENSION or not 0 < self.height <= MAX_DIMENSION:
			raise DecodeError(f"invalid image dimensions {self.width}x{self.height}")
		if self.colour_type not in ALLOWED_BIT_DEPTHS:
			raise DecodeError(f"invalid colour type {self.colour_type}")
		if self.bit_depth not in ALLOWED_BIT_DEPTHS[self.colour_type]:
			raise DecodeError(f"bit depth {self.bit_depth} is not allowed for colour type {self.colour_type}")
		if self.compression_method != 0:
			raise DecodeError(f"unknown compression method {self.compression_method}")
		if self.filter_method != 0:
			raise DecodeError(f"unknown filter method {self.filter_method}")
		if self.interlace_method not in (0, 1):
			raise DecodeError(f"unknown interlace method {self.interlace_method}")

	@property
	def channels(self):
		return CHANNELS[self.colour_type]

	@property
	def bits_per_pixel(self):
		return self.channels * self.bit_depth

	@property
	def bytes_per_pixel(self):
		# the unit filters operate on, rounded up to one byte
		return max(1, self.bits_per_pixel // 8)

	def stride(self, width):
		return (width * self.bits_per_pixel + 7) // 8

	def passes(self):
		"""Yield (x0, y0, dx, dy, pass width, pass height) for each non-empty (sub)image."""
		if self.interlace_method == 0:
			yield 0, 0, 1, 1, self.width, self.height
			return
		for x0, y0, dx, dy in ADAM7_PASSES:
			pass_width = (self.width - x0 + dx - 1) // dx
			pass_height = (self.height - y0 + dy - 1) // dy
			if pass_width and pass_height: # empty passes carry no scanlines at all
				yield x0, y0, dx, dy, pass_width, pass_height

	def scanlines_size(self):
		return sum(h * (1 + self.stride(w)) for _, _, _, _, w, h in self.passes())


def _parse_palette(body):
	if not body or len(body) % 3 or len(body) > 256 * 3:
		raise DecodeError(f"invalid PLTE length {len(body)}")
	return body


def _check_transparency(header, palette, trns):
	if header.colour_type == COLOUR_PALETTE:
		if len(trns) > len(palette) // 3:
			raise DecodeError("tRNS has more entries than the palette")
	elif header.colour_type == COLOUR_GREY:
		if len(trns) != 2:
			raise DecodeError(f"tRNS for greyscale must be 2 bytes, got {len(trns)}")
	elif header.colour_type == COLOUR_RGB:
		if len(trns) != 6:
			raise DecodeError(f"tRNS for truecolour must be 6 bytes, got {len(trns)}")
	else:
		raise DecodeError(f"tRNS is not allowed for colour type {header.colour_type}")


def _inflate(idat, expected_len):
	d = zlib.decompressobj()
	try:
		raw = d.decompress(idat, expected_len + 1)
	except zlib.error as e:
		raise DecodeError(f"corrupt image data: {e}") from e
	if len(raw) > expected_len:
		raise DecodeError(f"image data inflates to more than the expected {expected_len} bytes")
	if not d.eof:
		raise DecodeError("image data stream is truncated")
	if len(raw) != expected_len:
		raise DecodeError(f"image data inflates to {len(raw)} bytes, expected {expected_len}")
	return raw


def _unfilter_line(filter_type, line, prev, bpp):
	n = len(line)
	if filter_type == 0: # None
		return
	elif filter_type == 1: # Sub
		for i in range(bpp, n):
			line[i] = (line[i] + line[i - bpp]) & 0xff
	elif filter_type == 2: # Up
		for i in range(n):
			line[i] = (line[i] + prev[i]) & 0xff
	elif filter_type == 3: # Average
		for i in range(min(bpp, n)):
			line[i] = (line[i] + (prev[i] >> 1)) & 0xff
		for i in range(bpp, n):
			line[i] = (line[i] + ((line[i - bpp] + prev[i]) >> 1)) & 0xff
	elif filter_type == 4: # Paeth
		for i in range(min(bpp, n)): # left and upper-left are 0, so the predictor is always "up"
			line[i] = (line[i] + prev[i]) & 0xff
		for i in range(bpp, n):
			a = line[i - bpp]
			b = prev[i]
			c = prev[i - bpp]
			p = a + b - c
			pa = abs(p - a)
			pb = abs(p - b)
			pc = abs(p - c)
			if pa <= pb and pa <= pc:
				predictor = a
			elif pb <= pc:
				predictor = b
			else:
				predictor = c
			line[i] = (line[i] + predictor) & 0xff
	else:
		raise DecodeError(f"invalid filter type {filter_type}")


def _unfilter(raw, offset, rows, stride, bpp):
	lines = []
	prev = bytearray(stride)
	for _ in range(rows):
		filter_type = raw[offset]
		line = bytearray(raw[offset+1:offset+1+stride])
		_unfilter_line(filter_type, line, prev, bpp)
		lines.append(line)
		prev = line
		offset += 1 + stride
	return lines, offset


def _flatten(lines, width, bit_depth):
	# sub-byte samples get one byte each, dropping the padding bits at the end of each row
	if bit_depth >= 8:
		return b"".join(lines)
	table = _UNPACK[bit_depth]
	return b"".join(b"".join(table[b] for b in line)[:width] for line in lines)


def _expand(flat, count, header, palette, trns):
	"""Convert `count` unpacked pixels of any colour type / bit depth to RGBA8."""
	out = bytearray(count * 4)
	colour_type, depth = header.colour_type, header.bit_depth

	if colour_type == COLOUR_PALETTE:
		# indices past the end of the palette decode as opaque black
		tables = [bytearray(256), bytearray(256), bytearray(256), bytearray(b"\xff" * 256)]
		for i in range(len(palette) // 3):
			tables[0][i], tables[1][i], tables[2][i] = palette[3*i:3*i+3]
		for i, alpha in enumerate(trns or b""):
			tables[3][i] = alpha
		for c in range(4):
			out[c::4] = flat.translate(tables[c])

	elif colour_type == COLOUR_GREY:
		if depth == 16:
			grey = flat[0::2]
		elif depth < 8:
			grey = flat.translate(_GREY_SCALE[depth])
		else:
			grey = flat
		out[0::4] = grey
		out[1::4] = grey
		out[2::4] = grey
		out[3::4] = b"\xff" * count
		if trns is not None:
			key = int.from_bytes(trns[:2], "big")
			if depth == 16:
				key_bytes = key.to_bytes(2, "big")
				out[3::4] = bytes(0 if flat[i:i+2] == key_bytes else 255 for i in range(0, len(flat), 2))
			else:
				out[3::4] = bytes(0 if v == key else 255 for v in flat)

	elif colour_type == COLOUR_RGB:
		sample_len = depth // 8
		for c in range(3):
			out[c::4] = flat[c*sample_len::3*sample_len]
		out[3::4] = b"\xff" * count
		if trns is not None:
			if depth == 16:
				key_bytes = trns[:6]
			elif trns[0] == trns[2] == trns[4] == 0:
				key_bytes = bytes(trns[1::2])
			else:
				key_bytes = None # key can't match any 8-bit pixel
			if key_bytes is not None:
				pixel_len = 3 * sample_len
				out[3::4] = bytes(
					0 if flat[i:i+pixel_len] == key_bytes else 255
					for i in range(0, len(flat), pixel_len)
				)

	elif colour_type == COLOUR_GREY_ALPHA:
		if depth == 16:
			grey, alpha = flat[0::4], flat[2::4]
		else:
			grey, alpha = flat[0::2], flat[1::2]
		out[0::4] = grey
		out[1::4] = grey
		out[2::4] = grey
		out[3::4] = alpha

	else: # COLOUR_RGBA
		if depth == 16:
			for c in range(4):
				out[c::4] = flat[2*c::8]
		else:
			out[:] = flat

	return out


def decode_png(data) -> PixelBuffer:
	"""Decode any valid PNG into an 8-bit RGBA, non-interlaced PixelBuffer.

	Raises DecodeError for anything that isn't a structurally valid PNG."""
	header = None
	palette = None
	trns = None
	idat = []

	for chunk_type, body in iter_png_chunks(data):
		if header is None:
			if chunk_type != b"IHDR":
				raise DecodeError(f"first chunk must be IHDR, got {chunk_type!r}")
			header = PngHeader.parse(body)
		elif chunk_type == b"IHDR":
			raise DecodeError("duplicate IHDR chunk")
		elif chunk_type == b"PLTE":
			palette = _parse_palette(body)
		elif chunk_type == b"tRNS":
			trns = body
		elif chunk_type == b"IDAT":
			idat.append(body)
		elif chunk_type == b"IEND":
			pass
		elif is_critical(chunk_type):
			raise DecodeError(f"unknown critical chunk {chunk_type!r}")
		# ancillary chunks are skipped

	if not idat:
		raise DecodeError("no IDAT chunk")
	if header.colour_type == COLOUR_PALETTE and palette is None:
		raise DecodeError("palette image without PLTE chunk")
	if trns is not None:
		_check_transparency(header, palette, trns)

	expected_len = header.scanlines_size()
	if expected_len >= sys.maxsize or header.width * header.height * 4 >= sys.maxsize:
		raise DecodeError(f"image too large: {header.width}x{header.height}")
	raw = _inflate(b"".join(idat), expected_len)

	width, height = header.width, header.height
	bpp = header.bytes_per_pixel
	offset = 0

	if header.interlace_method == 0:
		lines, offset = _unfilter(raw, offset, height, header.stride(width), bpp)
		pixels = _expand(_flatten(lines, width, header.bit_depth), width * height, header, palette, trns)
		return PixelBuffer(bytes(pixels), width, height)

	pixels = bytearray(width * height * 4)
	for x0, y0, dx, dy, pass_width, pass_height in header.passes():
		lines, offset = _unfilter(raw, offset, pass_height, header.stride(pass_width), bpp)
		sub = _expand(_flatten(lines, pass_width, header.bit_depth), pass_width * pass_height, header, palette, trns)
		row_len = pass_width * 4
		for py in range(pass_height):
			row = sub[py*row_len:(py+1)*row_len]
			base = ((y0 + py*dy) * width + x0) * 4
			for c in range(4):
				pixels[base+c:base+c+(pass_width-1)*dx*4+1:dx*4] = row[c::4]

	return PixelBuffer(bytes(pixels), width, height)
