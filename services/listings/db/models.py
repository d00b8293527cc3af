"""
SQLAlchemy DeclarativeBase models for the listings tables the duplicate
engine reads and rewrites.

Column names use camelCase to match the actual PostgreSQL column names.
The CRUD layer owns the DDL; these models mirror it, including the
uniqueness constraints the merge engine must never violate.
"""

import uuid as _uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# create_type=False: the CRUD layer's migrations own the enum DDL.
VenueStatusEnum = Enum("ACTIVE", "INACTIVE", name="VenueStatus", create_type=False)
EventStatusEnum = Enum(
    "DRAFT", "PENDING", "APPROVED", "REJECTED", "CANCELLED",
    name="EventStatus", create_type=False,
)
ApplicationStatusEnum = Enum("PENDING", "APPROVED", "REJECTED", name="ApplicationStatus", create_type=False)
FavoritableTypeEnum = Enum("EVENT", "VENUE", "VENDOR", "PROMOTER", name="FavoritableType", create_type=False)


def _new_id() -> str:
    return str(_uuid.uuid4())


class Base(DeclarativeBase):
    pass


class Venue(Base):
    __tablename__ = "venues"
    __table_args__ = (
        # Optional, but unique when present
        Index(
            "idx_venues_google_place_id_unique",
            "googlePlaceId",
            unique=True,
            postgresql_where=text('"googlePlaceId" IS NOT NULL'),
        ),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String)
    slug: Mapped[str] = mapped_column(String, unique=True)
    address: Mapped[str] = mapped_column(String)
    city: Mapped[str] = mapped_column(String)
    state: Mapped[str] = mapped_column(String)
    zip: Mapped[str] = mapped_column(String)
    latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    capacity: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    amenities: Mapped[Optional[list]] = mapped_column(JSON, nullable=True, default=list)
    contactEmail: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    contactPhone: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    website: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    imageUrl: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    googlePlaceId: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    status: Mapped[str] = mapped_column(VenueStatusEnum, default="ACTIVE")
    createdAt: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    updatedAt: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class Promoter(Base):
    __tablename__ = "promoters"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_new_id)
    userId: Mapped[Optional[str]] = mapped_column(String, unique=True, nullable=True)
    companyName: Mapped[str] = mapped_column(String)
    slug: Mapped[str] = mapped_column(String, unique=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    website: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    contactEmail: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    contactPhone: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    socialLinks: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    logoUrl: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    verified: Mapped[bool] = mapped_column(Boolean, default=False)
    createdAt: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    updatedAt: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class Event(Base):
    __tablename__ = "events"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String)
    slug: Mapped[str] = mapped_column(String, unique=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    promoterId: Mapped[str] = mapped_column(String, ForeignKey("promoters.id", ondelete="CASCADE"))
    venueId: Mapped[Optional[str]] = mapped_column(
        String, ForeignKey("venues.id", ondelete="SET NULL"), nullable=True
    )
    startDate: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    endDate: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    categories: Mapped[Optional[list]] = mapped_column(JSON, nullable=True, default=list)
    tags: Mapped[Optional[list]] = mapped_column(JSON, nullable=True, default=list)
    ticketUrl: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    ticketPriceMin: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    ticketPriceMax: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    imageUrl: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    featured: Mapped[bool] = mapped_column(Boolean, default=False)
    status: Mapped[str] = mapped_column(EventStatusEnum, default="DRAFT")
    viewCount: Mapped[int] = mapped_column(Integer, default=0)
    sourceName: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    sourceUrl: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    sourceId: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    createdAt: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    updatedAt: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class Vendor(Base):
    __tablename__ = "vendors"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_new_id)
    userId: Mapped[Optional[str]] = mapped_column(String, unique=True, nullable=True)
    businessName: Mapped[str] = mapped_column(String)
    slug: Mapped[str] = mapped_column(String, unique=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    vendorType: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    products: Mapped[Optional[list]] = mapped_column(JSON, nullable=True, default=list)
    paymentMethods: Mapped[Optional[list]] = mapped_column(JSON, nullable=True, default=list)
    website: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    contactName: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    contactEmail: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    contactPhone: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    address: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    city: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    state: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    zip: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    logoUrl: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    verified: Mapped[bool] = mapped_column(Boolean, default=False)
    commercial: Mapped[bool] = mapped_column(Boolean, default=False)
    createdAt: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    updatedAt: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class EventVendor(Base):
    """A vendor's application to an event. (eventId, vendorId) is the natural key."""

    __tablename__ = "event_vendors"
    __table_args__ = (
        UniqueConstraint("eventId", "vendorId", name="uq_event_vendors_event_vendor"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_new_id)
    eventId: Mapped[str] = mapped_column(String, ForeignKey("events.id", ondelete="CASCADE"))
    vendorId: Mapped[str] = mapped_column(String, ForeignKey("vendors.id", ondelete="CASCADE"))
    boothInfo: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    status: Mapped[str] = mapped_column(ApplicationStatusEnum, default="PENDING")
    createdAt: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    updatedAt: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class UserFavorite(Base):
    """Polymorphic favorite: favoritableId has no FK, favoritableType says which table."""

    __tablename__ = "user_favorites"
    __table_args__ = (
        UniqueConstraint(
            "userId", "favoritableType", "favoritableId",
            name="uq_user_favorites_user_target",
        ),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_new_id)
    userId: Mapped[str] = mapped_column(String)
    favoritableType: Mapped[str] = mapped_column(FavoritableTypeEnum)
    favoritableId: Mapped[str] = mapped_column(String)
    createdAt: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class ErrorLog(Base):
    __tablename__ = "error_logs"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=_new_id)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    level: Mapped[str] = mapped_column(String, default="error")
    message: Mapped[str] = mapped_column(Text)
    context: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    source: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    stackTrace: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
