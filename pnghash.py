import argparse
import os
import sys
from dataclasses import dataclass

from decoder import decode_png
from digest import hex_digest, sha256_of
from encoder import CANONICAL_SETTINGS, encode_pixels
from errors import InputReadError, OutputWriteError, PngHashError


@dataclass(frozen=True)
class ImageHashes:
	width: int
	height: int
	# the png as it would be stored on the Minecraft servers
	minecraft_png: bytes
	minecraft_hash: bytes
	# hash of the input file as-is
	file_hash: bytes
	# hash of the decoded RGBA values, not of the file
	src_data_hash: bytes


def fingerprint(file_bytes, settings=CANONICAL_SETTINGS) -> ImageHashes:
	pixels = decode_png(file_bytes)
	minecraft_png = encode_pixels(pixels, settings)
	return ImageHashes(
		width=pixels.width,
		height=pixels.height,
		minecraft_png=minecraft_png,
		minecraft_hash=sha256_of(minecraft_png),
		file_hash=sha256_of(file_bytes),
		src_data_hash=sha256_of(pixels.data),
	)


def read_input(path):
	try:
		with open(path, "rb") as f:
			return f.read()
	except OSError as e:
		raise InputReadError(f"failed to read image from {path!r}: {e.strerror or e}") from e


def write_output(output_dir, hashes):
	path = os.path.join(output_dir, f"converted-{hex_digest(hashes.minecraft_hash)}.png")
	try:
		with open(path, "wb") as f:
			f.write(hashes.minecraft_png)
	except OSError as e:
		raise OutputWriteError(f"could not write image to {path!r}: {e.strerror or e}") from e
	return path


def main(args):
	try:
		file_bytes = read_input(args.input)
		hashes = fingerprint(file_bytes)
		print(f"[+] Processed {args.input!r}, size={hashes.width}x{hashes.height}", file=sys.stderr)

		path = None
		if args.output_dir is not None: # before any hash is printed
			path = write_output(args.output_dir, hashes)
	except PngHashError as e:
		print(f"[!] {e.stage} failed: {e}", file=sys.stderr)
		return 1

	print(f"minecraft hash: {hex_digest(hashes.minecraft_hash)}")
	print(f"image file hash: {hex_digest(hashes.file_hash)}")
	print(f"image data hash: {hex_digest(hashes.src_data_hash)}")
	if path is not None:
		print(f"minecraft image has been exported to {path}")
	return 0


def build_parser():
	parser = argparse.ArgumentParser(
		prog="pnghash",
		description="Re-encode a PNG the way Minecraft does and print its hashes",
	)
	parser.add_argument("input", help="Input image file")
	parser.add_argument("-o", "--output-dir", help="Directory to write the converted PNG to")
	return parser


def cli(argv=None):
	parser = build_parser()
	if argv is None:
		argv = sys.argv[1:]
	if not argv:
		parser.print_help(sys.stderr)
		return 2
	return main(parser.parse_args(argv))


if __name__ == "__main__":
	sys.exit(cli())
