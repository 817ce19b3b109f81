"""Unit tests for the document stage store."""

import asyncio

import pytest

from app.config import settings
from app.core.exceptions import StorageError, ValidationError
from app.schemas.medical_bill import DocumentCreate
from app.workflow.stage_store import DocumentStageStore, LocalFile


class FakeUploader:
    """Records uploads; optional per-file delays and a gate to hold uploads in flight."""

    def __init__(self, delays=None, gate=None, fail=()):
        self.calls = []
        self.delays = delays or {}
        self.gate = gate
        self.fail = set(fail)

    async def stage_upload(self, filename, content, mime_type):
        self.calls.append((filename, mime_type))
        if self.gate is not None:
            await self.gate.wait()
        await asyncio.sleep(self.delays.get(filename, 0))
        if filename in self.fail:
            raise StorageError(f"{filename}: upload failed")
        return DocumentCreate(
            storage_key=f"mymedicalcabinet-user-documents/u/bills/{filename}",
            filename=filename,
            original_name=filename,
            mime_type=mime_type,
            size=len(content),
        )


def _pdf(name="page.pdf", size=16):
    return LocalFile(filename=name, content=b"%" * size)


async def test_stage_appends_one_document(tmp_path):
    uploader = FakeUploader()
    store = DocumentStageStore(uploader, preview_dir=tmp_path)

    staged = await store.stage(_pdf("bill.pdf"))

    assert len(store) == 1
    assert store.documents[0] is staged
    assert staged.mime_type == "application/pdf"
    assert staged.preview_path is not None and staged.preview_path.exists()
    assert uploader.calls == [("bill.pdf", "application/pdf")]


async def test_invalid_type_makes_no_upload(tmp_path):
    uploader = FakeUploader()
    store = DocumentStageStore(uploader, preview_dir=tmp_path)

    with pytest.raises(ValidationError) as exc_info:
        await store.stage(LocalFile(filename="notes.txt", content=b"hello", mime_type="text/plain"))

    assert "File type not allowed" in exc_info.value.message
    assert uploader.calls == []
    assert len(store) == 0


async def test_oversized_file_makes_no_upload(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "BILL_MAX_UPLOAD_BYTES", 8)
    uploader = FakeUploader()
    store = DocumentStageStore(uploader, preview_dir=tmp_path)

    with pytest.raises(ValidationError) as exc_info:
        await store.stage(_pdf(size=9))

    assert "File too large" in exc_info.value.message
    assert uploader.calls == []
    assert len(store) == 0


async def test_unstage_releases_preview_and_is_idempotent(tmp_path):
    store = DocumentStageStore(FakeUploader(), preview_dir=tmp_path)
    staged = await store.stage(_pdf())
    preview = staged.preview_path

    removed = store.unstage(0)

    assert removed is staged
    assert not preview.exists()
    assert store.unstage(0) is None
    assert store.unstage(-1) is None
    assert store.unstage(99) is None
    assert len(store) == 0


async def test_stage_many_appends_in_completion_order(tmp_path):
    uploader = FakeUploader(delays={"slow.pdf": 0.05})
    store = DocumentStageStore(uploader, preview_dir=tmp_path)

    staged, errors = await store.stage_many([_pdf("slow.pdf"), _pdf("fast.pdf")])

    assert errors == []
    assert len(staged) == 2
    assert [d.original_name for d in store.documents] == ["fast.pdf", "slow.pdf"]


async def test_stage_many_reports_failures_without_aborting(tmp_path):
    uploader = FakeUploader(fail={"broken.pdf"})
    store = DocumentStageStore(uploader, preview_dir=tmp_path)

    staged, errors = await store.stage_many([
        _pdf("ok.pdf"),
        _pdf("broken.pdf"),
        LocalFile(filename="notes.txt", content=b"x", mime_type="text/plain"),
    ])

    assert [d.original_name for d in staged] == ["ok.pdf"]
    assert len(errors) == 2
    assert {type(e) for e in errors} == {StorageError, ValidationError}
    assert len(store) == 1


async def test_close_drops_late_uploads(tmp_path):
    gate = asyncio.Event()
    store = DocumentStageStore(FakeUploader(gate=gate), preview_dir=tmp_path)

    task = asyncio.create_task(store.stage(_pdf("late.pdf")))
    await asyncio.sleep(0)
    store.close()
    gate.set()
    late = await task

    assert len(store) == 0
    assert late.preview_path is None
    assert list(tmp_path.iterdir()) == []


async def test_clear_releases_every_preview(tmp_path):
    store = DocumentStageStore(FakeUploader(), preview_dir=tmp_path)
    await store.stage_many([_pdf("a.pdf"), _pdf("b.pdf")])

    store.clear()

    assert len(store) == 0
    assert list(tmp_path.iterdir()) == []
