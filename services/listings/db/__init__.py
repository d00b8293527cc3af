"""
SQLAlchemy async database module.

Re-exports engine, session, and model utilities for the duplicate engine.
"""

from services.listings.db.engine import create_engine, create_session_factory, standalone_session
from services.listings.db.models import (
    Base,
    Venue,
    Event,
    Vendor,
    Promoter,
    EventVendor,
    UserFavorite,
    ErrorLog,
)

__all__ = [
    "create_engine",
    "create_session_factory",
    "standalone_session",
    "Base",
    "Venue",
    "Event",
    "Vendor",
    "Promoter",
    "EventVendor",
    "UserFavorite",
    "ErrorLog",
]
