from photo_client.collection import PhotoCollection, PhotoState, CommentState
from photo_client.engine import OptimisticSyncEngine, OperationState, PendingOperation
from photo_client.errors import SyncError, TransientNetworkError

__all__ = [
    "PhotoCollection", "PhotoState", "CommentState",
    "OptimisticSyncEngine", "OperationState", "PendingOperation",
    "SyncError", "TransientNetworkError",
]
