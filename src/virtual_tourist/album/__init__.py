from .coordinator import AlbumCoordinator
from .resolver import DownloadInProgressError, PhotoResolver

__all__ = ["AlbumCoordinator", "DownloadInProgressError", "PhotoResolver"]
