"""Discord bridge between Jellyfin notifications and Jellyseerr requests."""

__version__ = "0.1.0"
