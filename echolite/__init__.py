"""Audio question answering gateway over local inference backends."""

__version__ = "0.3.0"
