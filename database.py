#!/usr/bin/env python3
"""
Database models and configuration for GameHub.
Handles the relational schema for games, live servers, users and saves.

The helpers in this module take an SQLAlchemy session as their first
argument and let SQLAlchemy errors propagate; the services in
``app/services`` translate them into the GameHub error taxonomy.
"""

import logging
import sqlite3
from typing import List, Optional

from sqlalchemy import (
    Column, ForeignKey, Integer, LargeBinary, String, UniqueConstraint,
    create_engine, event,
)
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, relationship, sessionmaker

from config import load_config

logger = logging.getLogger('gamehub.database')

Base = declarative_base()

_config = load_config()
DATABASE_URL = _config.database_url

try:
    engine = create_engine(DATABASE_URL, echo=_config.db_echo, pool_pre_ping=True)
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
except Exception as e:
    logger.warning(f"Database engine could not be created, storage is unavailable: {e}")
    engine = None
    SessionLocal = None


@event.listens_for(Engine, 'connect')
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    """SQLite ignores foreign keys (and ON DELETE CASCADE) unless asked."""
    if isinstance(dbapi_connection, sqlite3.Connection):
        cursor = dbapi_connection.cursor()
        cursor.execute('PRAGMA foreign_keys=ON')
        cursor.close()


class Game(Base):
    """A game servers can be announced for and saves can be stored under."""
    __tablename__ = "game"

    id = Column(Integer, primary_key=True)
    name = Column(String(255), unique=True, nullable=False, index=True)

    # Relationships
    servers = relationship("ActiveServer", back_populates="game", cascade="all, delete-orphan")
    saves = relationship("SaveRecord", back_populates="game", cascade="all, delete-orphan")


class ActiveServer(Base):
    """A reachable game-server process, identified by its network binding."""
    __tablename__ = "active_server"
    __table_args__ = (
        UniqueConstraint('ip_address', 'port', name='uq_active_server_endpoint'),
    )

    id = Column(Integer, primary_key=True)
    game_id = Column(Integer, ForeignKey("game.id", ondelete="CASCADE"), nullable=False, index=True)
    ip_address = Column(String(255), nullable=False)
    port = Column(Integer, nullable=False)

    # Relationships
    game = relationship("Game", back_populates="servers")


class User(Base):
    """Player account. The bcrypt hash is the only stored form of the password."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    identifier = Column(String(255), unique=True, nullable=False, index=True)
    password = Column(String(60), nullable=False)  # bcrypt hash

    # Relationships
    saves = relationship("SaveRecord", back_populates="user", cascade="all, delete-orphan")


class SaveRecord(Base):
    """One opaque save blob per (user, game)."""
    __tablename__ = "saves"

    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    game_id = Column(Integer, ForeignKey("game.id", ondelete="CASCADE"), primary_key=True)
    save = Column(LargeBinary, nullable=False)

    # Relationships
    user = relationship("User", back_populates="saves")
    game = relationship("Game", back_populates="saves")


def init_db(bind=None):
    """Initialize database tables."""
    bind = bind if bind is not None else engine
    if bind is None:
        return False
    try:
        Base.metadata.create_all(bind=bind)
        logger.info("Database tables initialized successfully")
        return True
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        return False


def dispose_db():
    """Release pooled connections at shutdown."""
    if engine is not None:
        engine.dispose()
        logger.info("Database connections released")


def _insert(db, model):
    """Return a dialect-specific INSERT supporting ``on_conflict_do_update``."""
    dialect = db.get_bind().dialect.name
    if dialect == 'postgresql':
        return pg_insert(model)
    if dialect == 'sqlite':
        return sqlite_insert(model)
    raise NotImplementedError(f"Upsert is not supported on dialect {dialect!r}")


# ---------------------------------------------------------------------------
# Games
# ---------------------------------------------------------------------------

def get_game_by_name(db, name: str) -> Optional[Game]:
    """Get game from database."""
    return db.query(Game).filter(Game.name == name).first()


def get_game_id(db, name: str) -> Optional[int]:
    """Return the id of the game called *name*, or None."""
    row = db.query(Game.id).filter(Game.name == name).first()
    return row[0] if row else None


def create_game(db, name: str) -> int:
    """Insert a game row. Raises IntegrityError if the name is taken."""
    game = Game(name=name)
    db.add(game)
    db.commit()
    return game.id


def delete_game(db, name: str) -> bool:
    """Delete a game and, by cascade, its servers and saves."""
    game = get_game_by_name(db, name)
    if not game:
        return False
    db.delete(game)
    db.commit()
    return True


def get_game_names(db) -> List[str]:
    """Return all game names, alphabetically."""
    return [name for (name,) in db.query(Game.name).order_by(Game.name).all()]


# ---------------------------------------------------------------------------
# Active servers
# ---------------------------------------------------------------------------

def get_active_servers(db, game_name: str) -> List[dict]:
    """Get endpoints registered for *game_name* (empty for unknown games)."""
    rows = db.query(ActiveServer).join(Game).filter(
        Game.name == game_name
    ).order_by(ActiveServer.id).all()
    return [{
        'id': s.id,
        'address': s.ip_address,
        'port': s.port,
    } for s in rows]


def upsert_active_server(db, game_id: int, address: str, port: int) -> int:
    """Insert an endpoint or move an existing ``(address, port)`` to *game_id*.

    One statement, so concurrent announcements of the same endpoint can never
    produce two rows.
    """
    stmt = _insert(db, ActiveServer).values(game_id=game_id, ip_address=address, port=port)
    stmt = stmt.on_conflict_do_update(
        index_elements=[ActiveServer.ip_address, ActiveServer.port],
        set_={'game_id': stmt.excluded.game_id},
    ).returning(ActiveServer.id)
    server_id = db.execute(stmt).scalar_one()
    db.commit()
    return server_id


def delete_active_server(db, server_id: int) -> bool:
    """Delete an endpoint by id. Returns False when nothing was deleted."""
    count = db.query(ActiveServer).filter(ActiveServer.id == server_id).delete()
    db.commit()
    return count > 0


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

def get_user_by_identifier(db, identifier: str) -> Optional[User]:
    """Get user from database."""
    return db.query(User).filter(User.identifier == identifier).first()


def create_user(db, identifier: str, password_hash: str) -> int:
    """Insert a user. Raises IntegrityError if *identifier* is taken."""
    user = User(identifier=identifier, password=password_hash)
    db.add(user)
    db.commit()
    return user.id


# ---------------------------------------------------------------------------
# Saves
# ---------------------------------------------------------------------------

def get_save(db, user_id: int, game_name: str) -> Optional[bytes]:
    """Return the save blob for ``(user_id, game_name)``, or None."""
    row = db.query(SaveRecord.save).join(Game).filter(
        SaveRecord.user_id == user_id,
        Game.name == game_name,
    ).first()
    return bytes(row[0]) if row else None


def upsert_save(db, user_id: int, game_id: int, blob: bytes) -> None:
    """Store *blob*, replacing any previous save for the pair."""
    stmt = _insert(db, SaveRecord).values(user_id=user_id, game_id=game_id, save=blob)
    stmt = stmt.on_conflict_do_update(
        index_elements=[SaveRecord.user_id, SaveRecord.game_id],
        set_={'save': stmt.excluded.save},
    )
    db.execute(stmt)
    db.commit()
