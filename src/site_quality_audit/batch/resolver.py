"""Expansion of audit requests into concrete (publisher, site) targets."""

import logging
from collections.abc import Iterable
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.errors import PublisherListError, TargetResolutionError
from ..core.types import PRIMARY_SITE_NAME, AuditTarget, PublisherRef
from ..db.repositories import PublisherRepository

logger = logging.getLogger(__name__)


def unique_site_names(names: Iterable[str | None]) -> list[str]:
    """Strip, drop blanks and collapse duplicates, keeping first-seen order."""
    seen: dict[str, None] = {}
    for name in names:
        if not isinstance(name, str):
            continue
        cleaned = name.strip()
        if cleaned:
            seen.setdefault(cleaned, None)
    return list(seen)


class TargetResolver:
    """Read-only lookups that turn publishers into audit targets."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def resolve_targets(self, publisher_id: UUID) -> list[AuditTarget]:
        """Targets for every site previously observed for a publisher.

        Sites are ordered by how often they were observed. A publisher with
        no known sites gets a single target for its primary property.

        Raises:
            TargetResolutionError: If the site lookup fails
        """
        try:
            async with self._session_factory() as session:
                counts = await PublisherRepository(session).site_name_counts(publisher_id)
        except SQLAlchemyError as e:
            raise TargetResolutionError(publisher_id, str(e)) from e

        site_names = unique_site_names(name for name, _ in counts)
        if not site_names:
            logger.debug(f"No observed sites for publisher {publisher_id}, using primary")
            site_names = [PRIMARY_SITE_NAME]

        return [AuditTarget(publisher_id=publisher_id, site_name=s) for s in site_names]

    async def resolve_all_eligible_publishers(self) -> list[PublisherRef]:
        """Publishers with a workflow status, most recently created first.

        Raises:
            PublisherListError: If the publisher list cannot be read
        """
        try:
            async with self._session_factory() as session:
                publishers = await PublisherRepository(session).list_eligible()
        except SQLAlchemyError as e:
            raise PublisherListError(f"Failed to fetch publishers: {e}") from e

        return [PublisherRef(id=p.id, name=p.name, domain=p.domain) for p in publishers]

    async def describe_publisher(self, publisher_id: UUID) -> PublisherRef:
        """Reference for an explicitly requested publisher."""
        try:
            async with self._session_factory() as session:
                publisher = await PublisherRepository(session).get_by_id(publisher_id)
        except SQLAlchemyError as e:
            raise PublisherListError(f"Failed to fetch publisher {publisher_id}: {e}") from e

        if publisher is None:
            logger.warning(f"Publisher {publisher_id} not found locally, dispatching by id")
            return PublisherRef(id=publisher_id, name=str(publisher_id))
        return PublisherRef(id=publisher.id, name=publisher.name, domain=publisher.domain)
