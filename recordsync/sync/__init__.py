from recordsync.sync.binding import CancellationToken, CollectionBinding
from recordsync.sync.client import SyncClient
from recordsync.sync.collection import CollectionSync

__all__ = ["CancellationToken", "CollectionBinding", "CollectionSync", "SyncClient"]
