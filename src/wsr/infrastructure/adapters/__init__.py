# Infrastructure Adapters Package
from .postponement_store import JsonPostponementStore
from .vault_repository import VaultItemRepository

__all__ = ["VaultItemRepository", "JsonPostponementStore"]
