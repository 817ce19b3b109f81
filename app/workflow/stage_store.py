"""Document Stage Store: pages uploaded before the bill they belong to exists.

Nothing here is persisted. Staged pages become bill documents only when the
bill is saved; an abandoned session simply drops them.
"""

from __future__ import annotations

import asyncio
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Protocol, Sequence, Tuple

from app.core.exceptions import MedicalBillError
from app.core.logging import get_logger
from app.schemas.ai import StagedDocumentRef
from app.schemas.medical_bill import DocumentCreate
from app.utils.files import extension_for, guess_mime_type, validate_bill_upload

logger = get_logger(__name__)


class StageUploader(Protocol):
    async def stage_upload(self, filename: str, content: bytes, mime_type: str) -> DocumentCreate:
        ...


@dataclass
class LocalFile:
    """A file picked by the user, not yet uploaded"""
    filename: str
    content: bytes
    mime_type: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass
class StagedDocument:
    storage_key: str
    filename: str
    original_name: str
    mime_type: str
    size: int
    preview_path: Optional[Path] = None

    @property
    def display_name(self) -> str:
        return self.original_name or self.filename

    def to_ref(self) -> StagedDocumentRef:
        return StagedDocumentRef(
            storage_key=self.storage_key,
            mime_type=self.mime_type,
            filename=self.filename,
            original_name=self.original_name,
        )

    def to_document(self) -> DocumentCreate:
        return DocumentCreate(
            storage_key=self.storage_key,
            filename=self.filename,
            original_name=self.original_name,
            mime_type=self.mime_type,
            size=self.size,
        )

    def release_preview(self) -> None:
        if self.preview_path is not None:
            self.preview_path.unlink(missing_ok=True)
            self.preview_path = None


class DocumentStageStore:
    """
    Ordered list of staged pages for one editing session.

    Uploads append in completion order, not selection order. ``close()``
    invalidates uploads still in flight: when they land they release their
    preview instead of appending.
    """

    def __init__(
        self,
        uploader: StageUploader,
        *,
        preview_dir: Optional[Path] = None,
        keep_previews: bool = True,
    ):
        self._uploader = uploader
        self._preview_dir = preview_dir
        self._keep_previews = keep_previews
        self._items: List[StagedDocument] = []
        self._epoch = 0

    @property
    def documents(self) -> List[StagedDocument]:
        return list(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def _write_preview(self, file: LocalFile, mime_type: str) -> Optional[Path]:
        if not self._keep_previews:
            return None
        with tempfile.NamedTemporaryFile(
            delete=False, suffix=extension_for(mime_type), dir=self._preview_dir
        ) as tmp:
            tmp.write(file.content)
            return Path(tmp.name)

    async def stage(self, file: LocalFile) -> StagedDocument:
        """
        Validate, upload and append one page.

        Raises:
            ValidationError: bad type, too large or empty (no upload attempted)
            MedicalBillError: the upload failed
        """
        mime_type = guess_mime_type(file.filename, file.mime_type)
        validate_bill_upload(file.filename, mime_type, file.size)

        epoch = self._epoch
        meta = await self._uploader.stage_upload(file.filename, file.content, mime_type)
        staged = StagedDocument(
            storage_key=meta.storage_key,
            filename=meta.filename,
            original_name=meta.original_name or file.filename,
            mime_type=meta.mime_type,
            size=meta.size,
            preview_path=self._write_preview(file, mime_type),
        )

        if epoch != self._epoch:
            logger.debug("Dropping upload from a closed session", extra={"storage_key": staged.storage_key})
            staged.release_preview()
            return staged

        self._items.append(staged)
        return staged

    async def stage_many(
        self, files: Sequence[LocalFile]
    ) -> Tuple[List[StagedDocument], List[MedicalBillError]]:
        """Upload concurrently; one file failing does not stop the others."""
        results = await asyncio.gather(*(self.stage(f) for f in files), return_exceptions=True)
        staged, errors = [], []
        for result in results:
            if isinstance(result, MedicalBillError):
                errors.append(result)
            elif isinstance(result, BaseException):
                raise result
            else:
                staged.append(result)
        return staged, errors

    def unstage(self, index: int) -> Optional[StagedDocument]:
        """Remove by position. A missing index is a no-op."""
        if not 0 <= index < len(self._items):
            return None
        item = self._items.pop(index)
        item.release_preview()
        return item

    def clear(self) -> None:
        for item in self._items:
            item.release_preview()
        self._items = []

    def close(self) -> None:
        self.clear()
        self._epoch += 1
