"""Tests for file storage and notification delivery."""

import hashlib

import pytest

from order_intake.core.exceptions import ValidationError
from order_intake.services.notification_service import NotificationService
from order_intake.services.storage_service import StorageService


class TestStorageService:

    @pytest.mark.asyncio
    async def test_local_file_is_copied_under_case_dir(self, tmp_path, order_workbook):
        source = tmp_path / "incoming" / "march order.xlsx"
        source.parent.mkdir()
        source.write_bytes(order_workbook)
        service = StorageService(str(tmp_path / "store"))

        stored = await service.store("case-001", str(source))

        digest = hashlib.sha256(order_workbook).hexdigest()
        assert stored["sha256"] == digest
        assert stored["filename"] == "march order.xlsx"
        assert stored["size"] == len(order_workbook)
        assert stored["stored_path"].startswith(str(tmp_path / "store" / "case-001"))
        assert service.read(stored["stored_path"]) == order_workbook

    @pytest.mark.asyncio
    async def test_file_url_scheme(self, tmp_path):
        source = tmp_path / "order.xlsx"
        source.write_bytes(b"data")

        stored = await StorageService(str(tmp_path / "store")).store("case-002", f"file://{source}")

        assert stored["filename"] == "order.xlsx"

    @pytest.mark.asyncio
    async def test_missing_file(self, tmp_path):
        with pytest.raises(ValidationError, match="file not found"):
            await StorageService(str(tmp_path)).store("case-003", str(tmp_path / "nope.xlsx"))

    @pytest.mark.asyncio
    async def test_empty_reference(self, tmp_path):
        with pytest.raises(ValidationError):
            await StorageService(str(tmp_path)).store("case-004", "")

    @pytest.mark.parametrize(
        "reference,expected",
        [
            ("https://blob.test/container/order%20v2.xlsx?sig=abc", "order%20v2.xlsx"),
            ("/tmp/uploads/order.xlsx", "order.xlsx"),
            ("https://blob.test/", "upload.xlsx"),
        ],
    )
    def test_filename_of(self, reference, expected):
        assert StorageService.filename_of(reference) == expected


class TestNotificationService:

    @pytest.mark.asyncio
    async def test_unknown_type_is_rejected_before_sending(self):
        service = NotificationService("http://127.0.0.1:9/unused")

        with pytest.raises(ValueError, match="Unknown notification type"):
            await service.notify("case-001", "party_invite")
