"""Service base class used by all GameHub stores."""
import logging
from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError

from ..errors import GameHubError, StorageError


class BaseService:
    """Holds the ``database`` module and turns backend failures into
    :class:`~app.errors.StorageError`.

    Sub-classes wrap each operation in :meth:`_storage` and catch
    ``IntegrityError`` themselves where a constraint violation has a
    meaning of its own (``Conflict``, ``NotFound``).  Whatever escapes as a
    plain ``SQLAlchemyError`` rolls the session back and is re-raised as
    ``StorageError``; nothing is retried.
    """

    def __init__(self, db_module) -> None:
        """
        Args:
            db_module: The imported ``database`` module (or any object that
                exposes the same helper functions).
        """
        self._db = db_module
        self._log = logging.getLogger(f'gamehub.service.{type(self).__name__}')

    @contextmanager
    def _storage(self, db, action: str):
        """Run the body as one storage operation described by *action*."""
        if db is None:
            raise StorageError("Database not available")
        try:
            yield
        except GameHubError:
            raise
        except SQLAlchemyError as exc:
            db.rollback()
            self._log.error("Storage failure while %s: %s", action, exc)
            raise StorageError(f"Storage failure while {action}") from exc
