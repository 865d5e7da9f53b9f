# spreadmap/constants.py
import os

VERSION_TEXT = "1.0.261019"

# ───────── Detection (OpenCV) ─────────
CANNY_LOW = int(os.getenv("SPREADMAP_CANNY_LOW", "50"))
CANNY_HIGH = int(os.getenv("SPREADMAP_CANNY_HIGH", "150"))
MIN_AREA_PERCENT = float(os.getenv("SPREADMAP_MIN_AREA_PERCENT", "1"))
DILATE_ITERATIONS = int(os.getenv("SPREADMAP_DILATE_ITERATIONS", "2"))

BLUR_KERNEL = 3          # Gaussian blur kernel (px, odd)
DILATE_KERNEL = 3        # square ones-kernel for dilation
MIN_REGION_PX = 30       # reject contours narrower/shorter than this (raster px)
MAX_ASPECT_RATIO = 10.0  # reject contours longer than 10:1 either way

# ───────── Rendering ─────────
RENDER_SCALE = float(os.getenv("SPREADMAP_RENDER_SCALE", "1.5"))
DEVICE_PIXEL_RATIO = float(os.getenv("SPREADMAP_DPR", "1"))
MIN_RENDER_SCALE = 0.25
MAX_RENDER_SCALE = 2.0

# ───────── Operator state ─────────
DEFAULT_PADDING_PX = 10
MAX_PADDING_PX = 200

# ───────── Ordering ─────────
# rows are split when a centre drifts >= ROW_TOLERANCE * median height from the row average
ROW_TOLERANCE = 0.4

# ───────── Extraction ─────────
MAX_PLU_FIELDS = int(os.getenv("SPREADMAP_MAX_PLU_FIELDS", "20"))
MAX_RANGE_EXPANSION = 500
PLU_MIN_LEN = 4
PLU_MAX_LEN = 8
MISSING_LOG_LIMIT = 20

# ───────── Offer parsing ─────────
BRAND_SCAN_LINES = 3
MAX_DETECTED_BRANDS = 5
SHORT_BRAND_MAX_LEN = 3
# single-token brands this short are only matched when listed here (upper-case)
SHORT_BRAND_ALLOWLIST = frozenset({"3M", "ARB", "CRC", "STP", "NGK", "AEG", "BP", "OEX"})

MAPPING_MISSING = "missing"
