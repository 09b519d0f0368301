import hashlib

DIGEST_SIZE = 32


def sha256_of(data) -> bytes:
	# a fresh hasher per span, nothing carries over between calls
	return hashlib.sha256(data).digest()


def hex_digest(digest) -> str:
	return digest.hex().upper()
