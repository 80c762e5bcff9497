"""
GameHub application package.

  app/services/   business logic: validation, hashing, error translation.
  app/errors.py   error kinds raised by the services.

The services wrap the helper functions of the top-level ``database`` module
and are composed by ``api_server.create_app``, which owns one SQLAlchemy
session per request and hands it to every service call.
"""
