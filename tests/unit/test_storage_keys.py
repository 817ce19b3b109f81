"""Unit tests for storage key building."""

from uuid import uuid4

from app.services import storage_service as storage
from app.utils.files import guess_mime_type


def test_key_extension_follows_content_type():
    key = storage.build_key("prefix/u/bills", "scan", "image/png")

    assert key.startswith("prefix/u/bills/")
    assert key.endswith(".png")
    assert guess_mime_type(key) == "image/png"


def test_content_type_wins_over_filename():
    key = storage.build_key("prefix/u/bills", "statement.PDF.tmp", "application/pdf")
    assert key.endswith(".pdf")


def test_filename_extension_used_for_unknown_type():
    key = storage.build_key("prefix/u/bills", "Bill.JPEG")
    assert key.endswith(".jpeg")


def test_no_extension_when_nothing_is_known():
    key = storage.build_key("prefix/u/bills", "scan")
    assert "." not in key.rsplit("/", 1)[-1]


def test_keys_are_unique_under_user_prefix():
    prefix = f"{storage.user_prefix(uuid4())}/bills"
    assert storage.build_key(prefix, "a.pdf") != storage.build_key(prefix, "a.pdf")
