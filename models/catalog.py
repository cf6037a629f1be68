"""
Catalog data models.

These models represent point-in-time snapshots of the payment provider's
product catalog. Used by the catalog service for caching and by the
product routes for browsing.

Thread Safety:
    - CatalogSnapshot is a frozen dataclass (immutable)
    - Safe to read from any thread without locks
    - New snapshots replace old ones atomically
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, Any, List, Optional, Tuple

from .money import cents_to_money


@dataclass(frozen=True)
class ProductMapping:
    """
    One row of the configured product table.

    Maps the storefront's product id to the provider's product id.
    The category decides which sizes are valid for the product.
    """

    internal_id: str
    """Storefront product id (e.g., 'ring-black')."""

    provider_product_id: str
    """Provider product id (e.g., 'prod_...')."""

    category: str = ""
    """Product category (e.g., 'ring', 'bracelet')."""


@dataclass(frozen=True)
class CatalogEntry:
    """
    A single product with its authoritative current price.

    Immutable snapshot of one provider product's state.
    """

    internal_id: str
    """Storefront product id."""

    provider_product_id: str
    """Provider product id."""

    provider_price_id: str
    """Provider id of the product's default price."""

    name: str
    """Product display name."""

    description: str
    """Product description (falls back to the name)."""

    unit_price: Decimal
    """Unit price in currency units, 2dp."""

    currency: str
    """Lowercase ISO currency code (e.g., 'usd')."""

    images: Tuple[str, ...] = ()
    """Image URLs."""

    metadata: Dict[str, str] = field(default_factory=dict)
    """Provider product metadata."""

    category: str = ""
    """Category from the product table."""

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for API responses."""
        return {
            "id": self.internal_id,
            "stripeProductId": self.provider_product_id,
            "stripePriceId": self.provider_price_id,
            "name": self.name,
            "description": self.description,
            "images": list(self.images),
            "price": float(self.unit_price),
            "currency": self.currency,
            "category": self.category,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_provider(
        cls,
        mapping: ProductMapping,
        product: Dict[str, Any],
        price: Dict[str, Any]
    ) -> "CatalogEntry":
        """
        Create an entry from provider product and price objects.

        Args:
            mapping: Product table row for this product
            product: Provider product dict
            price: Provider price dict (the product's default price)

        Returns:
            CatalogEntry with the price converted from cents
        """
        name = product.get("name", "")
        return cls(
            internal_id=mapping.internal_id,
            provider_product_id=product.get("id", mapping.provider_product_id),
            provider_price_id=price.get("id", ""),
            name=name,
            description=product.get("description") or name,
            unit_price=cents_to_money(price.get("unit_amount") or 0),
            currency=price.get("currency", "usd"),
            images=tuple(product.get("images") or ()),
            metadata=dict(product.get("metadata") or {}),
            category=mapping.category,
        )


@dataclass(frozen=True)
class CatalogSnapshot:
    """
    Point-in-time snapshot of the provider catalog.

    This is a FROZEN dataclass - completely immutable after creation.
    The catalog service creates new snapshots on each refresh.
    Readers never observe a partially-updated catalog.

    Usage:
        # In catalog service (creates new snapshot)
        snapshot = CatalogSnapshot.from_entries(entries)

        # In routes (reads current snapshot)
        snapshot = catalog_service.get_snapshot()
        entry = snapshot.get("ring-black")
    """

    fetched_at: datetime
    """When this snapshot was fetched from the provider."""

    entries: Dict[str, CatalogEntry]
    """Entries keyed by storefront product id."""

    order: Tuple[str, ...] = ()
    """Storefront ids in product-table order (for listing)."""

    is_stale: bool = False
    """Set by invalidate(); the next read forces a refresh."""

    @property
    def age_seconds(self) -> float:
        """How old this snapshot is in seconds."""
        now = datetime.now(timezone.utc)
        return (now - self.fetched_at).total_seconds()

    @property
    def is_empty(self) -> bool:
        """Whether any products are loaded."""
        return not self.entries

    def get(self, internal_id: str) -> Optional[CatalogEntry]:
        """Find an entry by storefront id."""
        return self.entries.get(internal_id)

    def list_entries(self) -> List[CatalogEntry]:
        """Entries in product-table order."""
        return [self.entries[i] for i in self.order if i in self.entries]

    def mark_stale(self) -> "CatalogSnapshot":
        """Return a copy of this snapshot flagged as stale."""
        return replace(self, is_stale=True)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for API responses."""
        return {
            "fetched_at": self.fetched_at.isoformat(),
            "products": [e.to_dict() for e in self.list_entries()],
            "age_seconds": self.age_seconds,
            "is_stale": self.is_stale,
        }

    @classmethod
    def from_entries(cls, entries: List[CatalogEntry]) -> "CatalogSnapshot":
        """Create a fresh snapshot from a list of entries."""
        return cls(
            fetched_at=datetime.now(timezone.utc),
            entries={e.internal_id: e for e in entries},
            order=tuple(e.internal_id for e in entries),
        )

    @classmethod
    def create_empty(cls) -> "CatalogSnapshot":
        """
        Create an empty snapshot (for initialization before first fetch).

        This is marked as stale immediately so the first read refreshes.
        """
        old_time = datetime(2000, 1, 1, tzinfo=timezone.utc)
        return cls(fetched_at=old_time, entries={}, order=(), is_stale=True)
