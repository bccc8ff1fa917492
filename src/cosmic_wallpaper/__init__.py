"""Cosmic Wallpaper — AI wallpaper generation with a durable local history."""

__version__ = "0.1.0"
