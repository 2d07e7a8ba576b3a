from .config import AppConfig, load_config
from .errors import GenerationFailure, NotFoundFailure, StoreFailure, ValidationFailure
from .persistence import InMemoryPersistence, JsonFilePersistence
from .store import LibraryStore

__all__ = [
    "AppConfig",
    "load_config",
    "GenerationFailure",
    "NotFoundFailure",
    "StoreFailure",
    "ValidationFailure",
    "InMemoryPersistence",
    "JsonFilePersistence",
    "LibraryStore",
]
