"""Business logic for the game catalogue."""
from typing import List

from sqlalchemy.exc import IntegrityError

from ..errors import Conflict, NotFound
from ..validators import require_name
from .base import BaseService


class GameCatalogService(BaseService):
    """Maps game names to game ids, delegating persistence to the
    ``database`` module's helper functions.

    All methods accept a *db* SQLAlchemy session as the first argument so
    that callers (Flask route handlers) control the session lifecycle.
    """

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def register(self, db, name: str) -> int:
        """Create a game called *name*.

        Args:
            db:   SQLAlchemy session.
            name: Unique game name.

        Returns:
            The new game id.

        Raises:
            Conflict: A game with this name already exists.
        """
        name = require_name(name, 'name')
        with self._storage(db, 'registering game'):
            try:
                game_id = self._db.create_game(db, name)
            except IntegrityError as exc:
                db.rollback()
                self._log.warning("Game %r already registered", name)
                raise Conflict(f"Game {name!r} already exists") from exc
        self._log.info("Registered game %r (id=%s)", name, game_id)
        return game_id

    def remove(self, db, name: str) -> None:
        """Delete the game *name* together with its servers and saves.

        Raises:
            NotFound: No game with this name exists.
        """
        name = require_name(name, 'name')
        with self._storage(db, 'removing game'):
            removed = self._db.delete_game(db, name)
        if not removed:
            raise NotFound(f"Game {name!r} not found")
        self._log.info("Removed game %r", name)

    def resolve(self, db, name: str) -> int:
        """Return the id of the game called *name*.

        Raises:
            NotFound: No game with this name exists.
        """
        name = require_name(name, 'name')
        with self._storage(db, 'resolving game'):
            game_id = self._db.get_game_id(db, name)
        if game_id is None:
            raise NotFound(f"Game {name!r} not found")
        return game_id

    def list(self, db) -> List[str]:
        """Return every registered game name, alphabetically."""
        with self._storage(db, 'listing games'):
            return self._db.get_game_names(db)
