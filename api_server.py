#!/usr/bin/env python3
"""
GameHub API server - HTTP front for the game catalogue, live-server registry,
user credentials and save storage.

Route handlers only convert request input into typed values and map the
services' error kinds to status codes; all rules live in ``app/services``.
"""

import logging
import re
from typing import Any, Callable, Optional

from flask import Flask, Response, g, jsonify, request

import database
from app.errors import (
    AuthFailure, Conflict, GameHubError, NotFound, StorageError, ValidationError,
)
from app.services import (
    CredentialService, GameCatalogService, SaveService, ServerRegistryService,
)
from config import Config, load_config

STATUS_CODES = {
    ValidationError: 400,
    AuthFailure: 401,
    NotFound: 404,
    Conflict: 409,
    StorageError: 500,
}


# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------

def setup_logging(level: str = 'INFO') -> logging.Logger:
    """Configure the root GameHub logger.

    Args:
        level: Log level string (DEBUG, INFO, WARNING, ERROR, CRITICAL).

    Returns:
        Configured logger instance.
    """
    numeric = getattr(logging, level.upper(), logging.INFO)
    logger = logging.getLogger('gamehub')
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter('[%(levelname)s] %(name)s: %(message)s'))
        logger.addHandler(handler)
    logger.setLevel(numeric)
    return logger


api_logger = logging.getLogger('gamehub.api')


# ---------------------------------------------------------------------------
# Input conversion
# ---------------------------------------------------------------------------

def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("JSON object body required")
    return data


_INT_RE = re.compile(r'-?[0-9]+')


def _to_int(value: Any, field: str) -> int:
    """Accept ints and decimal strings (headers and loose JSON clients)."""
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and _INT_RE.fullmatch(value.strip()):
        return int(value.strip())
    raise ValidationError(f"{field} must be an integer")


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------

def create_app(session_factory: Optional[Callable] = None,
               config: Optional[Config] = None) -> Flask:
    """Build the Flask app.

    Args:
        session_factory: Callable returning a new SQLAlchemy session; defaults
            to ``database.SessionLocal``.
        config:          Process configuration; read from the environment
            when omitted.
    """
    config = config or load_config()
    session_factory = session_factory or database.SessionLocal

    catalog = GameCatalogService(database)
    registry = ServerRegistryService(database, catalog)
    credentials = CredentialService(database, rounds=config.password_hash_rounds)
    saves = SaveService(database, catalog)

    app = Flask(__name__)
    app.config['GAMEHUB'] = config

    def db_session():
        if 'db' not in g:
            if session_factory is None:
                raise StorageError("Database not available")
            g.db = session_factory()
        return g.db

    @app.teardown_appcontext
    def close_db_session(exc):
        db = g.pop('db', None)
        if db is not None:
            db.close()

    @app.errorhandler(GameHubError)
    def handle_gamehub_error(exc):
        status = STATUS_CODES.get(type(exc), 500)
        if status >= 500:
            api_logger.error('%s %s failed: %s', request.method, request.path, exc)
        else:
            api_logger.info('%s %s -> %s: %s', request.method, request.path, status, exc)
        return jsonify({'error': str(exc)}), status

    @app.route('/', methods=['GET'])
    def index():
        return 'GameHub API'

    # =======================================================================
    # Games
    # =======================================================================

    @app.route('/game', methods=['POST'])
    def api_game_register():
        """Register a new game"""
        data = _json_body()
        game_id = catalog.register(db_session(), data.get('name'))
        return jsonify({'id': game_id}), 201

    @app.route('/game', methods=['DELETE'])
    def api_game_remove():
        """Remove a game with its servers and saves"""
        data = _json_body()
        catalog.remove(db_session(), data.get('name'))
        return jsonify({'message': 'Game removed'})

    # =======================================================================
    # Active servers
    # =======================================================================

    @app.route('/active_server/<name>', methods=['GET'])
    def api_active_server_list(name):
        """List the live servers of a game"""
        return jsonify(registry.list(db_session(), name))

    @app.route('/active_server', methods=['POST'])
    def api_active_server_register():
        """Announce a live server"""
        data = _json_body()
        server_id = registry.register(
            db_session(),
            data.get('ip'),
            _to_int(data.get('port'), 'port'),
            data.get('game_name'),
        )
        return jsonify({'id': server_id})

    @app.route('/active_server', methods=['DELETE'])
    def api_active_server_deregister():
        """Withdraw a live server"""
        data = _json_body()
        registry.deregister(db_session(), _to_int(data.get('id'), 'id'))
        return jsonify({'message': 'Server deregistered'})

    # =======================================================================
    # Users
    # =======================================================================

    @app.route('/register', methods=['POST'])
    def api_register():
        """Register a new user"""
        data = _json_body()
        identifier = data.get('identifier')
        api_logger.info('Register endpoint called for identifier=%s', identifier)
        user_id = credentials.register(db_session(), identifier, data.get('password'))
        return jsonify({'id': user_id})

    @app.route('/login', methods=['POST'])
    def api_login():
        """Log in a user"""
        data = _json_body()
        user_id = credentials.authenticate(
            db_session(), data.get('identifier'), data.get('password'))
        return jsonify({'id': user_id})

    # =======================================================================
    # Saves
    # =======================================================================

    @app.route('/get_save', methods=['POST'])
    def api_get_save():
        """Download a save blob"""
        data = _json_body()
        user_id = _to_int(data.get('id'), 'id')
        blob = saves.get(db_session(), user_id, data.get('game'))
        resp = Response(blob, mimetype='application/octet-stream')
        resp.headers['id'] = str(user_id)
        return resp

    @app.route('/save', methods=['POST'])
    def api_put_save():
        """Upload a save blob (raw body, user and game in headers)"""
        user_id = _to_int(request.headers.get('user-id'), 'user-id')
        saves.put(db_session(), user_id, request.headers.get('game-name'),
                  request.get_data())
        return jsonify({'message': 'Save stored'})

    return app


def main() -> int:
    config = load_config()
    setup_logging(config.log_level)
    if not database.init_db():
        api_logger.error('Database initialization failed, refusing to start')
        return 1
    app = create_app(config=config)
    api_logger.info('GameHub API listening on %s:%s', config.api_host, config.api_port)
    try:
        app.run(host=config.api_host, port=config.api_port)
    finally:
        database.dispose_db()
    return 0


if __name__ == '__main__':
    raise SystemExit(main())
