from dataclasses import dataclass

BYTES_PER_PIXEL = 4 # R, G, B, A at 8 bits each


@dataclass(frozen=True)
class PixelBuffer:
	"""RGBA8 pixels, row-major, top row first."""

	data: bytes
	width: int
	height: int

	def __post_init__(self):
		if self.width <= 0 or self.height <= 0:
			raise ValueError(f"invalid dimensions {self.width}x{self.height}")
		expected = self.width * self.height * BYTES_PER_PIXEL
		if len(self.data) != expected:
			raise ValueError(f"buffer holds {len(self.data)} bytes, {self.width}x{self.height} RGBA needs {expected}")
		if not isinstance(self.data, bytes):
			object.__setattr__(self, "data", bytes(self.data))

	@property
	def stride(self):
		return self.width * BYTES_PER_PIXEL

	def row(self, y):
		offset = self.stride * y
		return self.data[offset:offset+self.stride]
