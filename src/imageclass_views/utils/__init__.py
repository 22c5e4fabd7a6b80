"""Shared helpers for imageclass_views."""
