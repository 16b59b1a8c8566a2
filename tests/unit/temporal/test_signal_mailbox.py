"""Tests for the workflow signal mailbox."""

import pytest

from order_intake.temporal.workflows.mailbox import SIGNAL_KINDS, SignalMailbox


class TestSignalMailbox:

    @pytest.fixture
    def mailbox(self):
        return SignalMailbox()

    def test_starts_empty(self, mailbox):
        for kind in SIGNAL_KINDS:
            assert not mailbox.has(kind)

    def test_take_consumes_once(self, mailbox):
        mailbox.put("approval_received", {"approved": True})

        assert mailbox.take("approval_received") == {"approved": True}
        assert mailbox.take("approval_received") is None

    def test_latest_signal_wins(self, mailbox):
        mailbox.put("selections_submitted", {"items": {1: "a"}})
        mailbox.put("selections_submitted", {"items": {1: "b"}})

        assert mailbox.take("selections_submitted") == {"items": {1: "b"}}

    def test_reset_discards_early_signal(self, mailbox):
        mailbox.put("corrections_submitted", {"corrections": []})
        mailbox.reset("corrections_submitted")

        assert not mailbox.has("corrections_submitted")

    def test_slots_are_independent(self, mailbox):
        mailbox.put("file_reuploaded", {"blob_url": "s3://bucket/v2.xlsx"})

        assert not mailbox.has("approval_received")
        assert mailbox.has("file_reuploaded")

    def test_unknown_kind(self, mailbox):
        with pytest.raises(KeyError):
            mailbox.put("cancel_requested", {})
