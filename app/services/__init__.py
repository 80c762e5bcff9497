"""Services package: expose all concrete services from one import."""
from .game_catalog_service import GameCatalogService
from .server_registry_service import ServerRegistryService
from .credential_service import CredentialService
from .save_service import SaveService

__all__ = [
    'GameCatalogService',
    'ServerRegistryService',
    'CredentialService',
    'SaveService',
]
