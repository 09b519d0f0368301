import io
import zlib

from errors import DecodeError

PNG_MAGIC = b"\x89PNG\r\n\x1a\n"


def write_png_chunk(stream, name, body):
	stream.write(len(body).to_bytes(4, "big"))
	stream.write(name)
	stream.write(body)
	crc = zlib.crc32(body, zlib.crc32(name)) # zlib.crc32(name+body), but avoiding unnecessary data copies
	stream.write(crc.to_bytes(4, "big"))


def read_png_chunk(stream):
	header = stream.read(8)
	if len(header) < 8:
		raise DecodeError("unexpected end of stream while reading chunk header")
	chunk_len = int.from_bytes(header[:4], "big")
	chunk_type = header[4:]
	if chunk_len > 0x7fffffff:
		raise DecodeError(f"chunk {chunk_type!r} declares invalid length {chunk_len}")
	body = stream.read(chunk_len)
	crc_bytes = stream.read(4)
	if len(body) < chunk_len or len(crc_bytes) < 4:
		raise DecodeError(f"chunk {chunk_type!r} runs past the end of the stream")
	crc = int.from_bytes(crc_bytes, "big")
	if crc != zlib.crc32(body, zlib.crc32(chunk_type)):
		raise DecodeError(f"CRC mismatch in chunk {chunk_type!r}")
	return chunk_type, body


def iter_png_chunks(data):
	"""Yield (type, body) for every chunk of an in-memory PNG, up to and including IEND.

	The signature is checked first. Anything after IEND is ignored."""
	stream = io.BytesIO(data)
	if stream.read(len(PNG_MAGIC)) != PNG_MAGIC:
		raise DecodeError("not a PNG: signature mismatch")

	while True:
		chunk_type, body = read_png_chunk(stream)
		yield chunk_type, body
		if chunk_type == b"IEND":
			return


def is_critical(chunk_type):
	# the "ancillary" bit is bit 5 of the first type byte
	return not chunk_type[0] & 0x20
