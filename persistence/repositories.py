"""
Entity repositories — write access to the records that own screenshots.

One repository per EntityType. The Result Persister only ever calls
update_by_id(id, patch), so that is the whole interface.
"""

import logging
from abc import ABC, abstractmethod

from sqlalchemy import update
from sqlalchemy.orm import Session

from models.base import Base

logger = logging.getLogger(__name__)


class EntityRepository(ABC):

    @abstractmethod
    def update_by_id(self, entity_id: str, patch: dict) -> None:
        """Apply `patch` to the entity. A missing entity is not an error."""
        ...


class SqlAlchemyEntityRepository(EntityRepository):
    """
    Plain UPDATE ... WHERE id = :id.

    No read-modify-write, so repeating the same patch always lands on the
    same final row (last write wins).
    """

    def __init__(self, model: type[Base], db_session_factory):
        self._model = model
        self._db_session_factory = db_session_factory

    def update_by_id(self, entity_id: str, patch: dict) -> None:
        session: Session = self._db_session_factory()
        try:
            result = session.execute(
                update(self._model)
                .where(self._model.id == entity_id)
                .values(**patch)
                .execution_options(synchronize_session=False)
            )
            session.commit()
            if result.rowcount == 0:
                logger.warning(f"{self._model.__name__} {entity_id} not found, nothing updated")
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()
