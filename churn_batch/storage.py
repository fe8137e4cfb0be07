"""Blob storage holding uploaded CSV files."""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict

from .errors import FileNotFoundInStoreError


class FileStore(ABC):
    """Read access to previously uploaded files."""

    @abstractmethod
    def download(self, file_name: str) -> bytes:
        """
        Fetch a stored file.

        Raises:
            FileNotFoundInStoreError: If the file does not exist
        """
        pass


class LocalFileStore(FileStore):
    """
    Files under <root>/<bucket>/.

    Usage:
        store = LocalFileStore("./storage", bucket="csv-uploads")
        store.upload("portfolio.csv", data)
    """

    def __init__(self, root: Path | str, bucket: str = "csv-uploads"):
        self.bucket_dir = Path(root) / bucket
        self.bucket_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, file_name: str) -> Path:
        path = (self.bucket_dir / file_name).resolve()
        if self.bucket_dir.resolve() not in path.parents:
            raise FileNotFoundInStoreError(file_name)
        return path

    def upload(self, file_name: str, data: bytes) -> None:
        path = self._path(file_name)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)

    def download(self, file_name: str) -> bytes:
        path = self._path(file_name)
        if not path.is_file():
            raise FileNotFoundInStoreError(file_name)
        return path.read_bytes()


class InMemoryFileStore(FileStore):
    def __init__(self, files: Dict[str, bytes] | None = None):
        self.files = dict(files or {})

    def upload(self, file_name: str, data: bytes) -> None:
        self.files[file_name] = data

    def download(self, file_name: str) -> bytes:
        if file_name not in self.files:
            raise FileNotFoundInStoreError(file_name)
        return self.files[file_name]
