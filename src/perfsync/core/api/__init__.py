"""
FastAPI application for perfsync.

API Endpoints:
- GET /api/build-requests/{triggerable} - Pending build requests of a triggerable
- GET /health - Health check

Usage:
    # Run the server
    uvicorn perfsync.core.api.app:app

    # Or from Python
    from perfsync.core.api.app import app
"""

from perfsync.core.api.app import app

__all__ = ["app"]
