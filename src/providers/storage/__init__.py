"""Raw upload storage backends."""

from src.providers.storage.local_file_storage import LocalFileStorage

__all__ = ["LocalFileStorage"]
