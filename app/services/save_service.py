"""Business logic for per-player, per-game save blobs."""
from typing import Optional

from sqlalchemy.exc import IntegrityError

from ..errors import NotFound
from ..validators import require_blob, require_id, require_name
from .base import BaseService
from .game_catalog_service import GameCatalogService


class SaveService(BaseService):
    """Stores one opaque blob per (user, game).

    Writes overwrite unconditionally; there is no history and no size
    limit here, callers bound blob size upstream.

    All methods accept a *db* SQLAlchemy session as the first argument so
    that callers (Flask route handlers) control the session lifecycle.
    """

    def __init__(self, db_module, catalog: Optional[GameCatalogService] = None) -> None:
        super().__init__(db_module)
        self._catalog = catalog or GameCatalogService(db_module)

    def get(self, db, user_id: int, game_name: str) -> bytes:
        """Return the save of *user_id* for *game_name*.

        Raises:
            NotFound: No save exists for the pair.
        """
        user_id = require_id(user_id, 'user_id')
        game_name = require_name(game_name, 'game_name')
        with self._storage(db, 'loading save'):
            blob = self._db.get_save(db, user_id, game_name)
        if blob is None:
            raise NotFound("Save not found")
        return blob

    def put(self, db, user_id: int, game_name: str, blob: bytes) -> None:
        """Store *blob* as the save of *user_id* for *game_name*.

        Raises:
            NotFound: Unknown game or unknown user.
        """
        user_id = require_id(user_id, 'user_id')
        blob = require_blob(blob)
        game_id = self._catalog.resolve(db, game_name)
        with self._storage(db, 'storing save'):
            try:
                self._db.upsert_save(db, user_id, game_id, blob)
            except IntegrityError as exc:
                db.rollback()
                raise NotFound("Not found") from exc
        self._log.info("Stored %d byte save for user %s in %r", len(blob), user_id, game_name)
