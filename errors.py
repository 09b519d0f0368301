class PngHashError(Exception):
	stage = "pnghash"


class InputReadError(PngHashError, OSError):
	stage = "read"


class DecodeError(PngHashError, ValueError):
	stage = "decode"


class EncodeError(PngHashError, ValueError):
	stage = "encode"


class OutputWriteError(PngHashError, OSError):
	stage = "write"
