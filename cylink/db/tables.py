"""SQLAlchemy ORM models for the Cylink database."""
from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    Column, String, Integer, Float, Text, DateTime, Boolean, ForeignKey, Index
)
from sqlalchemy.orm import DeclarativeBase, relationship


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class ShortLinkRow(Base):
    """A shortened URL. Lifecycle (expiry, deactivation, soft delete) is managed outside the redirect path."""
    __tablename__ = "short_links"

    id = Column(Integer, primary_key=True, autoincrement=True)
    short_code = Column(String(64), nullable=False, unique=True, index=True)
    original_url = Column(Text, nullable=False)
    title = Column(String(500), nullable=True)

    user_id = Column(Integer, nullable=True, index=True)  # NULL for anonymous links
    is_active = Column(Boolean, nullable=False, default=True)
    expiry_date = Column(DateTime(timezone=True), nullable=True)
    redirect_type = Column(String(3), nullable=False, default="302")  # "301" or "302"

    has_password = Column(Boolean, nullable=False, default=False)
    password_hash = Column(String(255), nullable=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    clicks = relationship("ClickRow", back_populates="link")
    goals = relationship("ConversionGoalRow", back_populates="link", order_by="ConversionGoalRow.id")


class ClickRow(Base):
    """One resolved redirect. Immutable once written."""
    __tablename__ = "clicks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    url_id = Column(Integer, ForeignKey("short_links.id", ondelete="CASCADE"), nullable=False)
    clicked_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    ip_address = Column(String(45), nullable=True)  # IPv6 support
    user_agent = Column(String(500), nullable=True)
    referrer = Column(String(1000), nullable=True)
    country = Column(String(2), nullable=True)
    device_type = Column(String(20), nullable=False, default="unknown")
    browser = Column(String(50), nullable=False, default="unknown")

    link = relationship("ShortLinkRow", back_populates="clicks")

    __table_args__ = (
        Index("ix_clicks_url_clicked", "url_id", "clicked_at"),
    )


class ImpressionRow(Base):
    """One visit attempt. Append-only; is_unique is never revised."""
    __tablename__ = "impressions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    url_id = Column(Integer, ForeignKey("short_links.id", ondelete="CASCADE"), nullable=False)
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(String(500), nullable=True)
    referrer = Column(String(1000), nullable=True)
    source = Column(String(255), nullable=True)  # referrer hostname
    is_unique = Column(Boolean, nullable=False, default=True)
    timestamp = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    # Dedup lookup: (url, ip) within the trailing window
    __table_args__ = (
        Index("ix_impressions_dedup", "url_id", "ip_address", "timestamp"),
    )


class ConversionGoalRow(Base):
    """A target event attributed to a link's clicks."""
    __tablename__ = "conversion_goals"

    id = Column(Integer, primary_key=True, autoincrement=True)
    url_id = Column(Integer, ForeignKey("short_links.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    link = relationship("ShortLinkRow", back_populates="goals")


class ConversionRow(Base):
    """A conversion attributed to a click through its tracking ID."""
    __tablename__ = "conversions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    click_id = Column(Integer, ForeignKey("clicks.id", ondelete="CASCADE"), nullable=False, index=True)
    url_id = Column(Integer, ForeignKey("short_links.id", ondelete="CASCADE"), nullable=False)
    goal_id = Column(Integer, ForeignKey("conversion_goals.id", ondelete="SET NULL"), nullable=True)
    tracking_id = Column(String(64), nullable=False, index=True)
    conversion_value = Column(Float, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    __table_args__ = (
        Index("ix_conversions_url_created", "url_id", "created_at"),
    )
