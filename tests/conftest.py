import pytest

from pixels import PixelBuffer

# red, green / blue, black; all opaque
GOLDEN_PIXELS = bytes([
	255, 0, 0, 255,   0, 255, 0, 255,
	0, 0, 255, 255,   0, 0, 0, 255,
])

# canonical encoding of GOLDEN_PIXELS at 2x2
GOLDEN_PNG = bytes.fromhex(
	"89504e470d0a1a0a"
	"0000000d49484452" "0000000200000002080600000072b60d24"
	"0000001249444154" "785e63f8cfc0f01f0c813498000040d106fa" "d59dd523"
	"0000000049454e44" "ae426082"
)

GOLDEN_PNG_HASH = "62803E73BCA137B2D6E52F2C102DA80919FDC3F604F46BB87FDD433A1EA3E19D"
GOLDEN_PIXELS_HASH = "DD992567CA9DE65D7756032FEFEBDD3DF25D55EBE48FBB43B7F46247FAF573C0"


@pytest.fixture
def golden_pixels():
	return PixelBuffer(GOLDEN_PIXELS, 2, 2)


@pytest.fixture
def golden_png():
	return GOLDEN_PNG
