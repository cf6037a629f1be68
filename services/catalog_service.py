"""
Catalog service with optional background refresh thread.

This service caches the payment provider's product catalog for browsing.
It is NOT consulted for checkout prices - the cart validator always asks
the provider directly.

Read policy:
    - Fresh snapshot: served as-is
    - Stale snapshot (invalidated, or never loaded): refresh first
    - Refresh failed: serve the last snapshot anyway (stale-but-available)

Thread Safety:
    - Each refresh builds a new immutable CatalogSnapshot
    - Readers get the current snapshot via one attribute read
    - Refreshes are serialized so a burst of stale reads costs one fetch
    - invalidate() bumps a generation counter; a refresh whose fetch
      overlapped an invalidation installs its snapshot already stale

Usage:
    # At app startup
    catalog_service = CatalogService(provider_client, settings.products)
    catalog_service.start()

    # In routes (request thread)
    products = catalog_service.list_products()

    # On product.updated / price.updated webhooks
    catalog_service.invalidate()

    # At app shutdown
    catalog_service.stop()
"""

from __future__ import annotations

import threading
from typing import Iterable, List, Optional

from core.exceptions import CatalogFetchError, ProviderError
from core.provider_client import PaymentProviderClient
from models.catalog import CatalogEntry, CatalogSnapshot, ProductMapping
from logging_config import get_logger, set_thread_name


# Module logger
logger = get_logger(__name__)


class CatalogService:
    """
    Cache of active provider products mapped to storefront ids.

    Attributes:
        refresh_interval_seconds: Time between background refreshes (0 = no thread)
        is_running: Whether the background thread is active
    """

    def __init__(
        self,
        provider: PaymentProviderClient,
        products: Iterable[ProductMapping],
        refresh_interval_seconds: float = 300.0
    ):
        """
        Initialize catalog service.

        Args:
            provider: Payment provider client
            products: Product table rows (storefront id -> provider product id)
            refresh_interval_seconds: Seconds between background refreshes
        """
        self._provider = provider
        self._products = tuple(products)
        self._refresh_interval = refresh_interval_seconds

        # Thread control
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._is_running = False

        # Serializes refreshes; readers never take it unless the snapshot is stale
        self._refresh_lock = threading.Lock()

        # Start with empty (stale) snapshot so the first read fetches
        self._current_snapshot: CatalogSnapshot = CatalogSnapshot.create_empty()

        # Bumped by invalidate()
        self._generation = 0
        self._generation_lock = threading.Lock()

        # Track consecutive failures for logging
        self._consecutive_failures = 0

        logger.info(
            f"CatalogService initialized ({len(self._products)} mapped products, "
            f"refresh interval: {refresh_interval_seconds}s)"
        )

    @property
    def is_running(self) -> bool:
        """Whether the background refresh thread is active."""
        return self._is_running

    @property
    def refresh_interval_seconds(self) -> float:
        """Time between background refreshes."""
        return self._refresh_interval

    def start(self) -> None:
        """
        Start the background refresh thread.

        Does nothing if the refresh interval is 0 or the thread is already running.
        """
        if self._refresh_interval <= 0:
            logger.info("Catalog background refresh disabled")
            return

        if self._is_running:
            logger.warning("CatalogService already running")
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._refresh_loop,
            name="Catalog",
            daemon=True
        )
        self._is_running = True
        self._thread.start()

        logger.info("Catalog refresh thread started")

    def stop(self) -> None:
        """Stop the background refresh thread. Safe to call multiple times."""
        if not self._is_running:
            return

        logger.info("Stopping catalog refresh thread...")
        self._stop_event.set()

        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5.0)
            if self._thread.is_alive():
                logger.warning("Catalog thread did not stop cleanly")

        self._is_running = False
        self._thread = None

        logger.info("Catalog refresh thread stopped")

    # -------------------------------------------------------------------------
    # Cache operations
    # -------------------------------------------------------------------------

    def refresh(self) -> CatalogSnapshot:
        """
        Fetch the catalog from the provider and swap in a new snapshot.

        Only products whose default price is active and that appear in the
        product table are kept.

        Returns:
            The new snapshot

        Raises:
            CatalogFetchError: If the provider call failed. The previous
                snapshot stays in place.
        """
        with self._refresh_lock:
            return self._do_refresh()

    def invalidate(self) -> None:
        """Mark the current snapshot stale. The next read refreshes first."""
        with self._generation_lock:
            self._generation += 1
        self._current_snapshot = self._current_snapshot.mark_stale()
        logger.info("Catalog invalidated")

    def get_snapshot(self) -> CatalogSnapshot:
        """Current snapshot, as-is (never None, may be stale)."""
        return self._current_snapshot

    def lookup(self, internal_id: str) -> Optional[CatalogEntry]:
        """
        Find a product by storefront id.

        Returns:
            CatalogEntry, or None if the product is unknown or inactive
        """
        return self._read_snapshot().get(internal_id)

    def list_products(self) -> List[CatalogEntry]:
        """All cached products in product-table order."""
        return self._read_snapshot().list_entries()

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _read_snapshot(self) -> CatalogSnapshot:
        snapshot = self._current_snapshot
        if not snapshot.is_stale:
            return snapshot

        with self._refresh_lock:
            # Another reader may have refreshed while we waited
            snapshot = self._current_snapshot
            if not snapshot.is_stale:
                return snapshot
            try:
                return self._do_refresh()
            except CatalogFetchError:
                logger.warning(
                    f"Serving stale catalog ({len(snapshot.entries)} products, "
                    f"{int(snapshot.age_seconds)}s old)"
                )
                return snapshot

    def _do_refresh(self) -> CatalogSnapshot:
        """Single refresh. Caller must hold _refresh_lock."""
        logger.debug("Refreshing catalog...")
        generation = self._generation

        try:
            products = self._provider.list_active_products()
        except ProviderError as e:
            self._record_failure(e)
            raise CatalogFetchError(f"Failed to fetch catalog from provider: {e.message}") from e

        by_provider_id = {p.get("id"): p for p in products}
        entries: List[CatalogEntry] = []

        for mapping in self._products:
            product = by_provider_id.get(mapping.provider_product_id)
            if product is None:
                logger.debug(f"Mapped product {mapping.internal_id} not active at provider")
                continue

            price = product.get("default_price")
            if not isinstance(price, dict) or not price.get("active", False):
                logger.warning(f"Product {mapping.internal_id} has no active default price, skipping")
                continue

            entries.append(CatalogEntry.from_provider(mapping, product, price))

        new_snapshot = CatalogSnapshot.from_entries(entries)
        if self._generation != generation:
            logger.info("Catalog invalidated during refresh, keeping new snapshot stale")
            new_snapshot = new_snapshot.mark_stale()

        # Atomic reference swap
        self._current_snapshot = new_snapshot

        if self._consecutive_failures > 0:
            logger.info(
                f"Catalog refresh recovered after {self._consecutive_failures} failures"
            )
        self._consecutive_failures = 0

        logger.debug(f"Catalog refreshed: {len(entries)} products")
        return new_snapshot

    def _record_failure(self, error: Exception) -> None:
        self._consecutive_failures += 1

        # Log with increasing severity based on consecutive failures
        if self._consecutive_failures == 1:
            logger.warning(f"Catalog refresh failed: {error}")
        elif self._consecutive_failures <= 3:
            logger.error(f"Catalog refresh failed ({self._consecutive_failures} consecutive): {error}")
        elif self._consecutive_failures % 5 == 0:
            logger.error(
                f"Catalog refresh still failing ({self._consecutive_failures} consecutive): {error}"
            )

    def _refresh_loop(self) -> None:
        """Background thread main loop: refresh now, then every interval."""
        set_thread_name("Catalog")
        logger.info("Catalog refresh loop starting")

        while not self._stop_event.is_set():
            try:
                self.refresh()
            except CatalogFetchError:
                # Already logged; keep serving the previous snapshot
                pass

            if self._stop_event.wait(timeout=self._refresh_interval):
                break

        logger.info("Catalog refresh loop exiting")
