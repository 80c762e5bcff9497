"""Business logic for the live game-server registry."""
from typing import Dict, List, Optional

from sqlalchemy.exc import IntegrityError

from ..errors import NotFound
from ..validators import require_id, require_name, require_port
from .base import BaseService
from .game_catalog_service import GameCatalogService


class ServerRegistryService(BaseService):
    """Tracks which server processes are reachable for each game.

    Endpoints are keyed by their network binding ``(address, port)``, not by
    anything the server claims about itself: a process re-announcing the
    same binding under another game takes over the existing slot.

    All methods accept a *db* SQLAlchemy session as the first argument so
    that callers (Flask route handlers) control the session lifecycle.
    """

    def __init__(self, db_module, catalog: Optional[GameCatalogService] = None) -> None:
        """
        Args:
            db_module: The imported ``database`` module.
            catalog:   Game catalogue used to resolve game names.  A new one
                is built on *db_module* when omitted.
        """
        super().__init__(db_module)
        self._catalog = catalog or GameCatalogService(db_module)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def list(self, db, game_name: str) -> List[Dict]:
        """Return the endpoints registered for *game_name*.

        Returns:
            List of dicts with ``id``, ``address`` and ``port`` keys.  Empty
            when the game has no servers or does not exist.
        """
        game_name = require_name(game_name, 'game_name')
        with self._storage(db, 'listing servers'):
            return self._db.get_active_servers(db, game_name)

    def register(self, db, address: str, port: int, game_name: str) -> int:
        """Announce the endpoint ``address:port`` for *game_name*.

        Upserts on ``(address, port)``: an existing row keeps its id and is
        moved to the new game.

        Returns:
            The server id.

        Raises:
            NotFound: *game_name* is not a registered game.
        """
        address = require_name(address, 'address')
        port = require_port(port)
        game_id = self._catalog.resolve(db, game_name)
        with self._storage(db, 'registering server'):
            try:
                server_id = self._db.upsert_active_server(db, game_id, address, port)
            except IntegrityError as exc:
                # The game was removed between resolve and upsert.
                db.rollback()
                raise NotFound(f"Game {game_name!r} not found") from exc
        self._log.info("Server %s:%s registered for %r (id=%s)",
                       address, port, game_name, server_id)
        return server_id

    def deregister(self, db, server_id: int) -> None:
        """Remove the endpoint with id *server_id*; unknown ids are ignored."""
        server_id = require_id(server_id, 'id')
        with self._storage(db, 'deregistering server'):
            removed = self._db.delete_active_server(db, server_id)
        if removed:
            self._log.info("Server id=%s deregistered", server_id)
        else:
            self._log.debug("Deregister of unknown server id=%s ignored", server_id)
