"""Service discovery over a lease registry, UDP broadcast or UDP multicast."""

__version__ = "0.1.0"
