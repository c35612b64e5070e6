"""Streaming platforms and the provider aliases that resolve to them."""

from __future__ import annotations

import logging
from typing import Iterable

from sqlalchemy import func, select

from ..db_models import Platform, PlatformAlias
from ..models import PlatformSummary
from .base import DbServiceBase

logger = logging.getLogger(__name__)


class PlatformService(DbServiceBase):
    async def get_platforms(self) -> list[PlatformSummary]:
        async with self._session("fetching platforms") as session:
            platforms = (
                await session.scalars(select(Platform).order_by(Platform.name))
            ).all()
        return [PlatformSummary.model_validate(platform) for platform in platforms]

    async def create_platform(self, name: str, icon: str = "") -> PlatformSummary:
        async with self._transaction("creating platform") as session:
            platform = Platform(name=name, icon=icon)
            session.add(platform)
            await session.flush()
            summary = PlatformSummary.model_validate(platform)
        logger.info("Created platform %s (%s)", summary.id, name)
        return summary

    async def add_alias(self, platform_id: int, source: str, external_name: str) -> None:
        """Teach the lookup that ``external_name`` from ``source`` means this platform."""

        async with self._transaction("adding platform alias") as session:
            session.add(
                PlatformAlias(
                    platform_id=platform_id,
                    source=source,
                    external_name=external_name.strip(),
                )
            )

    async def lookup_platforms_by_external_names(
        self, external_names: Iterable[str], source: str
    ) -> list[PlatformSummary]:
        """Resolve provider names to known platforms, ignoring case.

        Names without an alias are skipped, and a platform matched by several
        names is returned once.
        """

        lowered = sorted({name.strip().lower() for name in external_names if name})
        if not lowered:
            return []

        matching_ids = select(PlatformAlias.platform_id).where(
            PlatformAlias.source == source,
            func.lower(PlatformAlias.external_name).in_(lowered),
        )
        stmt = (
            select(Platform)
            .where(Platform.id.in_(matching_ids))
            .order_by(Platform.name)
        )
        async with self._session("looking up platforms by external names") as session:
            platforms = (await session.scalars(stmt)).all()
        return [PlatformSummary.model_validate(platform) for platform in platforms]
