"""URL analysis crawler."""
