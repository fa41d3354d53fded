"""Application-wide extension instances."""

from flask_caching import Cache
from flask_compress import Compress

# Backs the per-business mission mirror; SimpleCache unless REDIS_URL is set.
cache = Cache()

# Compression for responses (Brotli and Gzip)
compress = Compress()

__all__ = ["cache", "compress"]
