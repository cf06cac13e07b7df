"""
FastAPI service for linkvault.

Provides:
- GET /health - Service health check
- GET /health/scheduler - Refresh scheduler status and last run report
- GET /health/database - Database connectivity and link counts
- POST /links/{id}/refresh - Manual metadata refresh
"""

from linkvault.api.app import create_app

__all__ = ["create_app"]
