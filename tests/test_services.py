#!/usr/bin/env python3
"""
Unit tests for the app/services layer.

Run with:
    python -m pytest tests/test_services.py
"""
import os
import sys
import unittest
from unittest.mock import MagicMock

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import database
from app.errors import AuthFailure, Conflict, NotFound, StorageError, ValidationError
from app.services import (
    CredentialService, GameCatalogService, SaveService, ServerRegistryService,
)
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool


# ---------------------------------------------------------------------------
# In-memory DB helper
# ---------------------------------------------------------------------------

def _make_session():
    engine = create_engine(
        'sqlite:///:memory:',
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    database.Base.metadata.create_all(engine)
    return sessionmaker(bind=engine)()


class ServiceTestCase(unittest.TestCase):

    def setUp(self):
        self.db = _make_session()
        self.catalog = GameCatalogService(database)
        self.registry = ServerRegistryService(database, self.catalog)
        self.credentials = CredentialService(database, rounds=4)
        self.saves = SaveService(database, self.catalog)

    def tearDown(self):
        self.db.close()

    def _count(self, model):
        return self.db.query(model).count()


# ===========================================================================
# GameCatalogService
# ===========================================================================

class TestGameCatalogService(ServiceTestCase):

    def test_register_returns_id_and_resolves(self):
        game_id = self.catalog.register(self.db, 'Doom')
        self.assertEqual(self.catalog.resolve(self.db, 'Doom'), game_id)

    def test_register_strips_name(self):
        game_id = self.catalog.register(self.db, '  Doom ')
        self.assertEqual(self.catalog.resolve(self.db, 'Doom'), game_id)

    def test_register_duplicate_conflicts(self):
        self.catalog.register(self.db, 'Doom')
        with self.assertRaises(Conflict):
            self.catalog.register(self.db, 'Doom')
        self.assertEqual(self._count(database.Game), 1)

    def test_session_usable_after_conflict(self):
        self.catalog.register(self.db, 'Doom')
        with self.assertRaises(Conflict):
            self.catalog.register(self.db, 'Doom')
        self.catalog.register(self.db, 'Quake')
        self.assertEqual(self.catalog.list(self.db), ['Doom', 'Quake'])

    def test_resolve_unknown_raises(self):
        with self.assertRaises(NotFound):
            self.catalog.resolve(self.db, 'Nope')

    def test_empty_name_is_validation_error(self):
        with self.assertRaises(ValidationError):
            self.catalog.register(self.db, '   ')
        with self.assertRaises(ValidationError):
            self.catalog.register(self.db, None)

    def test_overlong_name_is_validation_error(self):
        with self.assertRaises(ValidationError):
            self.catalog.register(self.db, 'x' * 256)

    def test_remove_unknown_raises(self):
        with self.assertRaises(NotFound):
            self.catalog.remove(self.db, 'Nope')

    def test_remove_cascades_to_servers_and_saves(self):
        self.catalog.register(self.db, 'Doom')
        self.catalog.register(self.db, 'Quake')
        user_id = self.credentials.register(self.db, 'alice', 'pw1')
        self.registry.register(self.db, '1.2.3.4', 7777, 'Doom')
        self.registry.register(self.db, '1.2.3.4', 7778, 'Quake')
        self.saves.put(self.db, user_id, 'Doom', b'doom-save')
        self.saves.put(self.db, user_id, 'Quake', b'quake-save')

        self.catalog.remove(self.db, 'Doom')

        self.assertEqual(self.catalog.list(self.db), ['Quake'])
        self.assertEqual(self._count(database.ActiveServer), 1)
        self.assertEqual(self._count(database.SaveRecord), 1)
        self.assertEqual(self.saves.get(self.db, user_id, 'Quake'), b'quake-save')
        with self.assertRaises(NotFound):
            self.saves.get(self.db, user_id, 'Doom')

    def test_list_is_alphabetical(self):
        for name in ('Quake', 'Doom', 'Hexen'):
            self.catalog.register(self.db, name)
        self.assertEqual(self.catalog.list(self.db), ['Doom', 'Hexen', 'Quake'])


# ===========================================================================
# ServerRegistryService
# ===========================================================================

class TestServerRegistryService(ServiceTestCase):

    def setUp(self):
        super().setUp()
        self.catalog.register(self.db, 'Doom')
        self.catalog.register(self.db, 'Quake')

    def test_list_empty(self):
        self.assertEqual(self.registry.list(self.db, 'Doom'), [])

    def test_list_unknown_game_is_empty(self):
        self.assertEqual(self.registry.list(self.db, 'Nope'), [])

    def test_register_and_list(self):
        server_id = self.registry.register(self.db, '1.2.3.4', 7777, 'Doom')
        self.assertEqual(
            self.registry.list(self.db, 'Doom'),
            [{'id': server_id, 'address': '1.2.3.4', 'port': 7777}],
        )

    def test_reregister_moves_endpoint_to_new_game(self):
        first = self.registry.register(self.db, '1.2.3.4', 7777, 'Doom')
        second = self.registry.register(self.db, '1.2.3.4', 7777, 'Quake')

        self.assertEqual(first, second)
        self.assertEqual(self._count(database.ActiveServer), 1)
        self.assertEqual(self.registry.list(self.db, 'Doom'), [])
        listed = self.registry.list(self.db, 'Quake')
        self.assertEqual([(s['address'], s['port']) for s in listed], [('1.2.3.4', 7777)])

    def test_reregister_same_game_is_idempotent(self):
        first = self.registry.register(self.db, '1.2.3.4', 7777, 'Doom')
        second = self.registry.register(self.db, '1.2.3.4', 7777, 'Doom')
        self.assertEqual(first, second)
        self.assertEqual(self._count(database.ActiveServer), 1)

    def test_same_address_other_port_is_new_entry(self):
        a = self.registry.register(self.db, '1.2.3.4', 7777, 'Doom')
        b = self.registry.register(self.db, '1.2.3.4', 7778, 'Doom')
        self.assertNotEqual(a, b)
        self.assertEqual(len(self.registry.list(self.db, 'Doom')), 2)

    def test_register_unknown_game_raises(self):
        with self.assertRaises(NotFound):
            self.registry.register(self.db, '1.2.3.4', 7777, 'Nope')
        self.assertEqual(self._count(database.ActiveServer), 0)

    def test_invalid_port(self):
        for port in (0, 65536, -1, '7777', True, None):
            with self.assertRaises(ValidationError):
                self.registry.register(self.db, '1.2.3.4', port, 'Doom')

    def test_missing_address(self):
        with self.assertRaises(ValidationError):
            self.registry.register(self.db, '', 7777, 'Doom')

    def test_deregister(self):
        server_id = self.registry.register(self.db, '1.2.3.4', 7777, 'Doom')
        self.registry.deregister(self.db, server_id)
        self.assertEqual(self.registry.list(self.db, 'Doom'), [])

    def test_deregister_unknown_is_noop(self):
        self.registry.deregister(self.db, 12345)
        self.registry.deregister(self.db, 12345)

    def test_deregister_invalid_id(self):
        with self.assertRaises(ValidationError):
            self.registry.deregister(self.db, 'abc')

    def test_deregister_id_beyond_column_range(self):
        for server_id in (2 ** 31, 2 ** 70):
            with self.assertRaises(ValidationError):
                self.registry.deregister(self.db, server_id)

    def test_deregister_largest_id_is_noop(self):
        self.registry.deregister(self.db, 2 ** 31 - 1)


# ===========================================================================
# CredentialService
# ===========================================================================

class TestCredentialService(ServiceTestCase):

    def test_register_and_authenticate(self):
        user_id = self.credentials.register(self.db, 'alice', 'pw1')
        self.assertEqual(self.credentials.authenticate(self.db, 'alice', 'pw1'), user_id)

    def test_authenticate_is_repeatable(self):
        user_id = self.credentials.register(self.db, 'alice', 'pw1')
        for _ in range(3):
            self.assertEqual(self.credentials.authenticate(self.db, 'alice', 'pw1'), user_id)

    def test_authenticate_with_new_service_instance(self):
        user_id = self.credentials.register(self.db, 'alice', 'pw1')
        restarted = CredentialService(database, rounds=5)
        self.assertEqual(restarted.authenticate(self.db, 'alice', 'pw1'), user_id)

    def test_duplicate_register_conflicts_without_partial_row(self):
        self.credentials.register(self.db, 'alice', 'pw1')
        with self.assertRaises(Conflict):
            self.credentials.register(self.db, 'alice', 'pw2')
        self.assertEqual(self._count(database.User), 1)
        # The original password still works, the second one does not.
        self.credentials.authenticate(self.db, 'alice', 'pw1')
        with self.assertRaises(AuthFailure):
            self.credentials.authenticate(self.db, 'alice', 'pw2')

    def test_wrong_password_and_unknown_user_are_indistinguishable(self):
        self.credentials.register(self.db, 'alice', 'pw1')
        with self.assertRaises(AuthFailure) as wrong:
            self.credentials.authenticate(self.db, 'alice', 'wrong')
        with self.assertRaises(AuthFailure) as unknown:
            self.credentials.authenticate(self.db, 'bob', 'anything')
        self.assertEqual(str(wrong.exception), str(unknown.exception))
        self.assertIs(type(wrong.exception), type(unknown.exception))

    def test_password_is_not_stored_in_clear(self):
        self.credentials.register(self.db, 'alice', 'pw1')
        user = database.get_user_by_identifier(self.db, 'alice')
        self.assertNotEqual(user.password, 'pw1')
        self.assertTrue(user.password.startswith('$2'))

    def test_same_password_hashes_differ(self):
        self.credentials.register(self.db, 'alice', 'pw1')
        self.credentials.register(self.db, 'bob', 'pw1')
        alice = database.get_user_by_identifier(self.db, 'alice')
        bob = database.get_user_by_identifier(self.db, 'bob')
        self.assertNotEqual(alice.password, bob.password)

    def test_empty_password_rejected(self):
        with self.assertRaises(ValidationError):
            self.credentials.register(self.db, 'alice', '')
        self.assertEqual(self._count(database.User), 0)

    def test_overlong_password_rejected(self):
        with self.assertRaises(ValidationError):
            self.credentials.register(self.db, 'alice', 'é' * 40)

    def test_missing_identifier_rejected(self):
        with self.assertRaises(ValidationError):
            self.credentials.authenticate(self.db, None, 'pw1')

    def test_dummy_hash_ready_before_first_login(self):
        self.assertTrue(self.credentials._dummy_hash.startswith(b'$2'))

    def test_corrupt_stored_hash_is_storage_error(self):
        self.credentials.register(self.db, 'alice', 'pw1')
        user = database.get_user_by_identifier(self.db, 'alice')
        user.password = 'not-a-bcrypt-hash'
        self.db.commit()
        with self.assertRaises(StorageError):
            self.credentials.authenticate(self.db, 'alice', 'pw1')


# ===========================================================================
# SaveService
# ===========================================================================

class TestSaveService(ServiceTestCase):

    def setUp(self):
        super().setUp()
        self.catalog.register(self.db, 'Doom')
        self.user_id = self.credentials.register(self.db, 'alice', 'pw1')

    def test_put_then_get(self):
        self.saves.put(self.db, self.user_id, 'Doom', b'\x00\x01blobA')
        self.assertEqual(self.saves.get(self.db, self.user_id, 'Doom'), b'\x00\x01blobA')

    def test_put_overwrites(self):
        self.saves.put(self.db, self.user_id, 'Doom', b'blobA')
        self.saves.put(self.db, self.user_id, 'Doom', b'blobB')
        self.assertEqual(self.saves.get(self.db, self.user_id, 'Doom'), b'blobB')
        self.assertEqual(self._count(database.SaveRecord), 1)

    def test_empty_blob_roundtrips(self):
        self.saves.put(self.db, self.user_id, 'Doom', b'')
        self.assertEqual(self.saves.get(self.db, self.user_id, 'Doom'), b'')

    def test_bytearray_accepted(self):
        self.saves.put(self.db, self.user_id, 'Doom', bytearray(b'abc'))
        self.assertEqual(self.saves.get(self.db, self.user_id, 'Doom'), b'abc')

    def test_get_missing_raises(self):
        with self.assertRaises(NotFound):
            self.saves.get(self.db, 999, 'Doom')

    def test_get_unknown_game_raises(self):
        with self.assertRaises(NotFound):
            self.saves.get(self.db, self.user_id, 'Nope')

    def test_put_unknown_game_raises(self):
        with self.assertRaises(NotFound):
            self.saves.put(self.db, self.user_id, 'Nope', b'x')

    def test_put_unknown_user_raises(self):
        with self.assertRaises(NotFound):
            self.saves.put(self.db, 999, 'Doom', b'x')
        self.assertEqual(self._count(database.SaveRecord), 0)

    def test_put_non_binary_rejected(self):
        with self.assertRaises(ValidationError):
            self.saves.put(self.db, self.user_id, 'Doom', 'text')

    def test_user_id_beyond_column_range(self):
        with self.assertRaises(ValidationError):
            self.saves.get(self.db, 2 ** 70, 'Doom')
        with self.assertRaises(ValidationError):
            self.saves.put(self.db, 2 ** 31, 'Doom', b'x')

    def test_saves_are_per_user(self):
        bob = self.credentials.register(self.db, 'bob', 'pw2')
        self.saves.put(self.db, self.user_id, 'Doom', b'alice')
        self.saves.put(self.db, bob, 'Doom', b'bob')
        self.assertEqual(self.saves.get(self.db, self.user_id, 'Doom'), b'alice')
        self.assertEqual(self.saves.get(self.db, bob, 'Doom'), b'bob')


# ===========================================================================
# Storage failures
# ===========================================================================

class TestStorageErrors(unittest.TestCase):

    def test_backend_failure_becomes_storage_error(self):
        db_module = MagicMock()
        db_module.get_game_id.side_effect = OperationalError('SELECT', {}, Exception('down'))
        session = MagicMock()
        catalog = GameCatalogService(db_module)
        with self.assertRaises(StorageError):
            catalog.resolve(session, 'Doom')
        session.rollback.assert_called_once()

    def test_missing_session_is_storage_error(self):
        with self.assertRaises(StorageError):
            GameCatalogService(database).list(None)


if __name__ == '__main__':
    unittest.main()
