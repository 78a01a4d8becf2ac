from .database import KeyValueDatabase, KeyValueStore, MemoryStore, StorageType
from .node_storage import NodeStorage

__all__ = ['KeyValueDatabase', 'KeyValueStore', 'MemoryStore', 'NodeStorage', 'StorageType']
