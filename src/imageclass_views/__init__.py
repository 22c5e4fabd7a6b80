"""Scalable image-classification indexing and layout-aware tensor views."""

__version__ = "0.1.0"
