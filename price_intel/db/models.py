"""SQLAlchemy database models.

The engine only reads these tables. Rows are written by the ingestion and
product-resolution pipelines.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class LinkStatus(str, Enum):
    """Resolution status of a source listing -> canonical product link."""

    MATCHED = "MATCHED"
    CREATED = "CREATED"
    NEEDS_REVIEW = "NEEDS_REVIEW"
    UNMATCHED = "UNMATCHED"


# Links whose observations count toward the canonical product
RESOLVED_LINK_STATUSES = (LinkStatus.MATCHED.value, LinkStatus.CREATED.value)


class VisibilityStatus(str, Enum):
    """Retailer eligibility for consumer-facing data."""

    ELIGIBLE = "ELIGIBLE"
    INELIGIBLE = "INELIGIBLE"
    SUSPENDED = "SUSPENDED"


class MerchantStatus(str, Enum):
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"


class ListingStatus(str, Enum):
    LISTED = "LISTED"
    UNLISTED = "UNLISTED"


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class Product(Base):
    """Canonical (resolved, deduplicated) product."""

    __tablename__ = "products"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    caliber: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)  # Free text, normalized on read
    brand: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    grain_weight: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    round_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )

    links: Mapped[list["ProductLink"]] = relationship(
        "ProductLink", back_populates="product"
    )

    __table_args__ = (
        Index("ix_products_caliber", "caliber"),
    )


class Retailer(Base):
    """Retailer publishing offers."""

    __tablename__ = "retailers"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    website: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    visibility_status: Mapped[str] = mapped_column(
        String(16), default=VisibilityStatus.ELIGIBLE.value, nullable=False
    )

    merchant_links: Mapped[list["MerchantRetailer"]] = relationship(
        "MerchantRetailer", back_populates="retailer"
    )


class MerchantRetailer(Base):
    """Merchant account relationship for a retailer.

    A retailer without an ACTIVE merchant relationship is visible on its
    own eligibility; with one, the merchant listing must also be LISTED.
    """

    __tablename__ = "merchant_retailers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    merchant_id: Mapped[str] = mapped_column(String(36), nullable=False)
    retailer_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("retailers.id"), nullable=False
    )
    status: Mapped[str] = mapped_column(
        String(16), default=MerchantStatus.ACTIVE.value, nullable=False
    )
    listing_status: Mapped[str] = mapped_column(
        String(16), default=ListingStatus.LISTED.value, nullable=False
    )

    retailer: Mapped["Retailer"] = relationship("Retailer", back_populates="merchant_links")

    __table_args__ = (
        UniqueConstraint("merchant_id", "retailer_id", name="uq_merchant_retailer"),
    )


class SourceProduct(Base):
    """Retailer-specific listing before resolution."""

    __tablename__ = "source_products"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    retailer_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("retailers.id"), nullable=False
    )
    title: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )


class ProductLink(Base):
    """Link from a source listing to its canonical product."""

    __tablename__ = "product_links"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    product_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("products.id"), nullable=False
    )
    source_product_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("source_products.id"), nullable=False
    )
    status: Mapped[str] = mapped_column(
        String(16), default=LinkStatus.MATCHED.value, nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )

    product: Mapped["Product"] = relationship("Product", back_populates="links")

    __table_args__ = (
        UniqueConstraint("source_product_id", name="uq_product_link_source"),
    )


class AffiliateFeedRun(Base):
    """Ingestion run. Prices from ignored runs are never shown."""

    __tablename__ = "affiliate_feed_runs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    started_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    ignored_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)


class Price(Base):
    """Append-only price/stock observation."""

    __tablename__ = "prices"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    source_product_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("source_products.id"), nullable=False
    )
    retailer_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("retailers.id"), nullable=False
    )
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    in_stock: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    affiliate_feed_run_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("affiliate_feed_runs.id"), nullable=True
    )
    observed_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )

    __table_args__ = (
        Index("ix_prices_source_observed", "source_product_id", "observed_at"),
        Index("ix_prices_observed", "observed_at"),
    )
