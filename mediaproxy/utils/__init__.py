"""Utility modules for the media proxy."""
