"""Application-wide constants."""

# Device classes reported by the RUM beacon
class DeviceClass:
    """Device class constants."""
    DESKTOP = "desktop"
    MOBILE = "mobile"
    TABLET = "tablet"
    OTHER = "other"

    ALL = (DESKTOP, MOBILE, TABLET, OTHER)


# Rollup build path labels
class RollupPath:
    """Which computation produced a day's rollups."""
    NATIVE = "native"
    FALLBACK = "fallback"
    EMPTY = "empty"


# Query source labels
class QuerySource:
    """Which store served a Top Offenders request."""
    ROLLUPS = "rollups"
    RAW = "raw"


# Column caps (mirror the table definitions)
SELECTOR_MAX_LENGTH = 255
PAGE_PATH_MAX_LENGTH = 255
SCRIPT_URL_MAX_LENGTH = 255
INTERACTION_TYPE_MAX_LENGTH = 32

# Percentile levels stored per rollup row
ROLLUP_PERCENTILES = (0.50, 0.75, 0.95)

# Rows per upsert statement
UPSERT_CHUNK_SIZE = 500
