"""
Result persister — writes a finished screenshot URL back to its owner.

The target of a job is polymorphic: a marketplace listing, a user page or a
template. Instead of resolving a model class from a string at runtime, the
persister holds a closed EntityType → EntityRepository mapping built once at
startup. Anything outside that mapping is logged and skipped.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Mapping, Union

from models.entities import PageListing, Template, UserPage
from models.enums import EntityType, ScreenshotStatus
from persistence.repositories import EntityRepository, SqlAlchemyEntityRepository

logger = logging.getLogger(__name__)


class ResultPersister:

    def __init__(
        self,
        repositories: Mapping[EntityType, EntityRepository],
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self._repositories = dict(repositories)
        self._clock = clock

    def persist(self, entity_type: Union[EntityType, str], entity_id: str, image_url: str) -> None:
        """
        Point the entity at `image_url` and mark its screenshot completed.

        Idempotent: the patch does not depend on the entity's current state.
        Errors from the repository propagate; deciding whether they are fatal
        is the caller's job.
        """
        try:
            key = EntityType(entity_type)
        except ValueError:
            logger.warning(f"Unknown entity type: {entity_type!r}, screenshot not persisted")
            return

        repository = self._repositories.get(key)
        if repository is None:
            logger.warning(f"No repository registered for {key.value}, screenshot not persisted")
            return

        repository.update_by_id(entity_id, {
            "screenshot_url": image_url,
            "screenshot_status": ScreenshotStatus.COMPLETED.value,
            "screenshot_updated_at": self._clock(),
        })
        logger.info(f"Updated {key.value} {entity_id} with screenshot URL")


def build_default_repositories(db_session_factory) -> dict[EntityType, EntityRepository]:
    return {
        EntityType.PAGE_LISTING: SqlAlchemyEntityRepository(PageListing, db_session_factory),
        EntityType.USER_PAGE: SqlAlchemyEntityRepository(UserPage, db_session_factory),
        EntityType.TEMPLATE: SqlAlchemyEntityRepository(Template, db_session_factory),
    }
