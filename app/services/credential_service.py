"""Business logic for user registration and password verification."""
import bcrypt
from sqlalchemy.exc import IntegrityError

from ..errors import AuthFailure, Conflict, StorageError
from ..validators import require_name, require_password
from .base import BaseService

DEFAULT_ROUNDS = 12

_AUTH_FAILURE_MESSAGE = "invalid user or password"


class CredentialService(BaseService):
    """Registers users and checks their passwords.

    Passwords are stored only as bcrypt hashes.  Authentication uses
    ``bcrypt.checkpw``, which re-derives the hash with the salt and cost
    stored inside the hash itself, so the same password verifies on every
    call and across restarts.

    All methods accept a *db* SQLAlchemy session as the first argument so
    that callers (Flask route handlers) control the session lifecycle.
    """

    def __init__(self, db_module, rounds: int = DEFAULT_ROUNDS) -> None:
        """
        Args:
            db_module: The imported ``database`` module.
            rounds:    bcrypt cost factor (4-31) for new hashes.
        """
        super().__init__(db_module)
        self._rounds = rounds
        # Unknown identifiers are checked against this hash so a failed login
        # costs the same whether or not the account exists.
        self._dummy_hash = bcrypt.hashpw(b'gamehub-dummy', bcrypt.gensalt(rounds=rounds))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def hash_password(self, password: bytes) -> str:
        """Return a fresh salted bcrypt hash of *password*."""
        return bcrypt.hashpw(password, bcrypt.gensalt(rounds=self._rounds)).decode('ascii')

    def _burn_verification(self, password: bytes) -> None:
        bcrypt.checkpw(password, self._dummy_hash)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def register(self, db, identifier: str, password: str) -> int:
        """Create a user.

        Args:
            db:         SQLAlchemy session.
            identifier: Unique login name.
            password:   Clear-text password (at most 72 bytes UTF-8).

        Returns:
            The new user id.

        Raises:
            Conflict: *identifier* is already registered.
        """
        identifier = require_name(identifier, 'identifier')
        password_hash = self.hash_password(require_password(password))
        with self._storage(db, 'registering user'):
            try:
                user_id = self._db.create_user(db, identifier, password_hash)
            except IntegrityError as exc:
                db.rollback()
                self._log.warning("Registration refused, identifier %r already taken", identifier)
                raise Conflict(f"{identifier}: user already registered") from exc
        self._log.info("Registered user %r (id=%s)", identifier, user_id)
        return user_id

    def authenticate(self, db, identifier: str, password: str) -> int:
        """Return the id of the user if *password* matches.

        Raises:
            AuthFailure: Unknown identifier or wrong password.  Both cases
                raise the same message.
        """
        identifier = require_name(identifier, 'identifier')
        candidate = require_password(password)
        with self._storage(db, 'authenticating user'):
            user = self._db.get_user_by_identifier(db, identifier)
            if user is None:
                self._burn_verification(candidate)
                verified = False
            else:
                try:
                    verified = bcrypt.checkpw(candidate, user.password.encode('ascii'))
                except ValueError as exc:
                    self._log.error("Stored password hash for user id=%s is unreadable", user.id)
                    raise StorageError("Stored credentials are corrupt") from exc
        if not verified:
            self._log.warning("Authentication failed for %r", identifier)
            raise AuthFailure(_AUTH_FAILURE_MESSAGE)
        return user.id
