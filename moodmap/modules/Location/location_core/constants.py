"""Location store constants and configuration defaults."""

# Sample table
SAMPLES_TABLE = "samples"

# Coordinate ranges (WGS84 degrees)
LATITUDE_RANGE = (-90.0, 90.0)
LONGITUDE_RANGE = (-180.0, 180.0)

MS_PER_SECOND = 1000

# Largest value SQLite can store in an INTEGER column
MAX_TIMESTAMP = 2**63 - 1

# Paging size for streamed full-table reads
DEFAULT_ITER_BATCH_SIZE = 500

# Watcher defaults (one fix per second, no distance filter)
DEFAULT_MIN_TIME_INTERVAL_MS = 1000
DEFAULT_MIN_DISTANCE_M = 0.0

# Bounds polling for the date picker
DEFAULT_BOUNDS_REFRESH_INTERVAL_S = 5.0

# Retention (0 = keep every sample)
DEFAULT_RETENTION_MAX_ROWS = 0
DEFAULT_RETENTION_CHECK_EVERY = 100

# Serial NMEA receivers
DEFAULT_BAUD_RATE = 9600
DEFAULT_SERIAL_PORT = "/dev/serial0"
DEFAULT_RECONNECT_DELAY = 3.0

EARTH_RADIUS_M = 6_371_008.8
