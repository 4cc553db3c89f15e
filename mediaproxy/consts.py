"""Constants for the media proxy."""

ALLOWED_IMAGE_HOSTS = frozenset(["images.microcms-assets.io", "images.microcms.io"])
ALLOWED_FITS = frozenset(["clip", "clamp", "crop", "max"])

# Order matters: this is the canonical signing order (sig is appended last)
MEDIA_PROXY_QUERY_KEYS = ("u", "w", "h", "q", "fit", "sig")
ALLOWED_QUERY_KEYS = frozenset(MEDIA_PROXY_QUERY_KEYS)

MIN_DIMENSION = 1
MAX_DIMENSION = 2000
MIN_QUALITY = 40
MAX_QUALITY = 85

MEDIA_PROXY_PATH = "/api/media"
UPSTREAM_FETCH_TIMEOUT_SECONDS = 10.0
MEDIA_CACHE_CONTROL = "public, s-maxage=2592000, stale-while-revalidate=86400"
