"""
Media Storage Backend Package

This package contains the FastAPI application and the storage layer that
turns untrusted uploads into safely named files under a single root.
"""

from .main import app  # noqa: F401
