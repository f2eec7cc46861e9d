"""Marketing advisor chat backend: streaming relay over WebSockets."""

__version__ = "0.1.0"
