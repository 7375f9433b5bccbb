from .base import ApiError, DownloadError, PhotoSearchAdapter
from .flickr import FlickrPhotoSearchAdapter

__all__ = ["ApiError", "DownloadError", "FlickrPhotoSearchAdapter", "PhotoSearchAdapter"]
