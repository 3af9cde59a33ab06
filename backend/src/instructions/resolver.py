"""Effective instruction override resolution.

Merge order for one key:
    1. Organization override (active organization) - wins when non-blank
    2. Global override (global_settings row)      - applies otherwise
    3. None: the caller falls back to its hardcoded default

The global map is cached with a TTL (5 minutes by default). The organization
map is cached by OrganizationService for the active organization only and is
invalidated on save, reset and organization switch.

`resolve_effective_sync` reads cached data only and never loads, for hot
paths that cannot wait on the store. `resolve_effective` refreshes both caches
first. Neither raises: a failed load is logged and resolution proceeds with
whatever is cached.
"""

import logging
import time
from typing import Optional

from config import Settings, get_settings
from errors import AdminError
from storage.ports import GLOBAL_SETTINGS, RowStorePort, StoreError
from tenancy.service import OrganizationService
from .cache import Clock, InstructionsCache, OverrideMap, merge_override, override_value

logger = logging.getLogger(__name__)


class OverrideResolver:
    """Owns the global override cache and merges it with the organization cache."""

    def __init__(
        self,
        store: RowStorePort,
        organizations: OrganizationService,
        settings: Optional[Settings] = None,
        clock: Clock = time.monotonic,
    ):
        self.store = store
        self.organizations = organizations
        self.settings = settings or get_settings()
        self.global_cache = InstructionsCache(
            ttl_seconds=self.settings.GLOBAL_INSTRUCTIONS_TTL_SECONDS, clock=clock
        )

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def _load_global(self) -> Optional[OverrideMap]:
        row = await self.store.select_one(
            GLOBAL_SETTINGS,
            columns=["custom_instructions"],
            eq={"id": self.settings.GLOBAL_SETTINGS_ROW_ID},
        )
        instructions = row.get("custom_instructions") if row else None
        if instructions:
            logger.info(f"Loaded {len(instructions)} global override(s): {', '.join(instructions)}")
        else:
            logger.info("No global overrides set, using hardcoded defaults")
        return instructions or None

    async def ensure_global_loaded(self) -> Optional[OverrideMap]:
        try:
            return await self.global_cache.ensure_fresh(self._load_global)
        except StoreError as e:
            # Keep serving the previous map; loaded_at is unchanged so the next call retries
            logger.warning(f"Failed to load global overrides: {e.message}")
            return self.global_cache.data

    async def ensure_org_loaded(self) -> Optional[OverrideMap]:
        try:
            return await self.organizations.get_active_org_instructions()
        except (StoreError, AdminError) as e:
            logger.warning(
                f"Failed to load organization overrides: {e.message}",
                extra={"org_id": self.organizations.get_active_org_id()},
            )
            return self.organizations.get_active_org_instructions_sync()

    async def ensure_all_loaded(self) -> None:
        """Prime both caches (call once after sign-in)."""
        await self.ensure_global_loaded()
        await self.ensure_org_loaded()
        logger.info("Global and organization override caches primed")

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def resolve_effective_sync(self, key: str) -> Optional[str]:
        """Effective override from cached data only; None means no override (or not loaded)."""
        return merge_override(
            self.organizations.get_active_org_instructions_sync(),
            self.global_cache.data,
            key,
        )

    async def resolve_effective(self, key: str) -> Optional[str]:
        await self.ensure_global_loaded()
        await self.ensure_org_loaded()
        return self.resolve_effective_sync(key)

    def get_global_override_sync(self, key: str) -> Optional[str]:
        return override_value(self.global_cache.data, key)

    async def get_global_override(self, key: str) -> Optional[str]:
        await self.ensure_global_loaded()
        return self.get_global_override_sync(key)

    async def get_all_global_overrides(self) -> Optional[OverrideMap]:
        """Whole global map (for administration screens)."""
        data = await self.ensure_global_loaded()
        return dict(data) if data is not None else None

    # ------------------------------------------------------------------
    # Invalidation
    # ------------------------------------------------------------------

    def invalidate_global(self) -> None:
        self.global_cache.invalidate()
        logger.debug("Global override cache invalidated")

    def invalidate_org(self) -> None:
        self.organizations.invalidate_org_instructions()
        logger.debug("Organization override cache invalidated")

    def invalidate_all(self) -> None:
        self.invalidate_global()
        self.invalidate_org()
