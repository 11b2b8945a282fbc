"""metrotun: supervise an Expo Metro tunnel behind a small control API."""

__version__ = "0.1.0"
