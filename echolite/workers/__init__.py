"""External process workers."""
