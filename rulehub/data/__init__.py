"""
Settings for the hub service.

This package is responsible for:
* Determining the data directory (via env var + sensible default).
* Loading and persisting the hub settings file.
"""
