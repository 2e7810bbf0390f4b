"""Core components of the media transport."""
