"""Process configuration for GameHub, read once from the environment.

Values may also come from a ``.env`` file in the working directory.
"""
import os
from dataclasses import dataclass

from dotenv import load_dotenv
from sqlalchemy.engine import URL

load_dotenv()


@dataclass(frozen=True)
class Config:
    database_url: str
    api_host: str = '0.0.0.0'
    api_port: int = 5000
    password_hash_rounds: int = 12
    log_level: str = 'INFO'
    db_echo: bool = False


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == '':
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


def _build_database_url() -> str:
    url = os.getenv('DATABASE_URL')
    if url:
        return url
    host = os.getenv('DB_HOST', 'localhost')
    port = _int_env('DB_PORT', 5432)
    name = os.getenv('DB_NAME', 'gamehub')
    user = os.getenv('DB_USER', 'gamehub')
    password = os.getenv('DB_PASSWORD', '')
    url = URL.create(
        drivername='postgresql',
        username=user,
        password=password or None,
        host=host,
        port=port,
        database=name,
    )
    return url.render_as_string(hide_password=False)


def load_config() -> Config:
    """Build a :class:`Config` from the current environment."""
    rounds = _int_env('PASSWORD_HASH_ROUNDS', 12)
    if not 4 <= rounds <= 31:
        raise ValueError(f"PASSWORD_HASH_ROUNDS must be between 4 and 31, got {rounds}")
    return Config(
        database_url=_build_database_url(),
        api_host=os.getenv('API_HOST', '0.0.0.0'),
        api_port=_int_env('API_PORT', 5000),
        password_hash_rounds=rounds,
        log_level=os.getenv('GAMEHUB_LOG_LEVEL', 'INFO'),
        db_echo=os.getenv('DB_ECHO', '').lower() in ('1', 'true', 'yes'),
    )
