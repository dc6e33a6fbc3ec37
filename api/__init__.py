"""
EduSpark API package.

Provides the FastAPI application for entitlements, usage metering and
billing.
"""

from .app import app, create_app

__all__ = ["app", "create_app"]
