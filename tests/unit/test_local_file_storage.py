"""Unit tests for LocalFileStorage."""

from __future__ import annotations

from pathlib import Path

import pytest

from src.providers.storage.local_file_storage import LocalFileStorage, stored_filename
from src.utils.errors import ProcessingError


class TestStoredFilename:
    def test_millis_suffix(self) -> None:
        assert stored_filename("report.pdf", 1700000000000) == "report_1700000000000.pdf"

    def test_directories_are_dropped(self) -> None:
        assert stored_filename("../../etc/passwd", 1) == "passwd_1"
        assert stored_filename("C:\\Users\\me\\notes.txt", 1) == "notes_1.txt"

    def test_no_extension(self) -> None:
        assert stored_filename("README", 5) == "README_5"


class TestLocalFileStorage:
    @pytest.mark.asyncio
    async def test_save_load_delete(self, file_storage: LocalFileStorage) -> None:
        path = await file_storage.save("handbook.txt", b"leave policy")

        assert Path(path).parent == file_storage.base_dir
        assert Path(path).name.startswith("handbook_")
        assert await file_storage.load(path) == b"leave policy"
        assert await file_storage.delete(path) is True
        assert await file_storage.delete(path) is False

    @pytest.mark.asyncio
    async def test_creates_base_dir(self, tmp_path: Path) -> None:
        storage = LocalFileStorage(base_dir=tmp_path / "a" / "b")

        path = await storage.save("x.md", b"# x")

        assert Path(path).exists()

    @pytest.mark.asyncio
    async def test_load_missing_raises(self, file_storage: LocalFileStorage, tmp_path: Path) -> None:
        with pytest.raises(ProcessingError, match="unavailable") as exc_info:
            await file_storage.load(str(tmp_path / "missing.txt"))

        assert exc_info.value.provider_name == "local_storage"
