"""Background workers for the terminal."""
from .sync_worker import AutoSyncWorker, start_sync_worker

__all__ = ["AutoSyncWorker", "start_sync_worker"]
