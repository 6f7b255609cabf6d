"""
HTTP API for the estimate view tracker.

This package provides a single FastAPI application that exposes:
- Link and pixel tracking endpoints
- View statistics and estimate listings
- Estimate, device and contractor registration
- The in-app notification feed
"""

from api.main import app

__all__ = ["app"]
