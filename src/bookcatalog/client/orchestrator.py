"""Draft and cover-upload state for the add-book form.

Each file selection starts an UploadSession that moves through
``idle -> previewing -> uploading -> succeeded | failed``. Only the session
currently attached to the open Draft may change it: results from a
superseded session, a removed image or a discarded Draft are dropped when
they arrive.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from enum import Enum

import structlog

from ..core.errors import CatalogError, InternalError, UploadTimeout, ValidationError
from ..core.models import BookRecord, new_book_id, placeholder_cover, validate_book_fields
from ..core.store import CatalogStore
from ..core.uploads import LocalFile, preview_url, validate_image
from .gateway import DEFAULT_TIMEOUT, UploadGateway
from .notify import Notifier
from .view import CatalogView

log = structlog.get_logger()

DRAFT_FIELDS = ("title", "author", "genre", "published_year")

_REJECTION_TITLES = {
    "TooLarge": "File Too Large",
    "InvalidType": "Invalid File Type",
}


class SessionState(str, Enum):
    IDLE = "idle"
    PREVIEWING = "previewing"
    UPLOADING = "uploading"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


def _token() -> str:
    return uuid.uuid4().hex


@dataclass
class UploadSession:
    filename: str
    token: str = field(default_factory=_token)
    state: SessionState = SessionState.IDLE
    history: list[SessionState] = field(default_factory=lambda: [SessionState.IDLE])
    error: CatalogError | None = None

    @property
    def busy(self) -> bool:
        return self.state in (SessionState.PREVIEWING, SessionState.UPLOADING)

    def advance(self, state: SessionState) -> None:
        self.state = state
        self.history.append(state)


@dataclass
class Draft:
    title: str = ""
    author: str = ""
    genre: str = ""
    published_year: str = ""
    preview_url: str | None = None
    durable_url: str | None = None
    session: UploadSession | None = None
    token: str = field(default_factory=_token)
    committing: bool = False

    @property
    def uploading(self) -> bool:
        return self.session is not None and self.session.busy

    def effective_cover(self) -> str:
        return self.durable_url or self.preview_url or placeholder_cover(self.title.strip())


class UploadOrchestrator:
    def __init__(
        self,
        gateway: UploadGateway,
        view: CatalogView,
        notifier: Notifier | None = None,
        store: CatalogStore | None = None,
        upload_timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.gateway = gateway
        self.view = view
        self.notifier = notifier or Notifier()
        self.store = store
        self.upload_timeout = upload_timeout
        self._draft: Draft | None = None

    @property
    def draft(self) -> Draft | None:
        return self._draft

    def open_draft(self) -> Draft:
        if self._draft is not None:
            self.cancel_draft()
        self._draft = Draft()
        log.debug("draft_opened", draft=self._draft.token)
        return self._draft

    def cancel_draft(self) -> None:
        draft = self._draft
        if draft is None:
            return
        self._draft = None
        log.info("draft_discarded", draft=draft.token, uploading=draft.uploading)

    def set_fields(self, **fields: object) -> None:
        draft = self._require_draft()
        for name, value in fields.items():
            if name not in DRAFT_FIELDS:
                raise TypeError(f"Unknown draft field: {name}")
            setattr(draft, name, "" if value is None else str(value))

    def remove_image(self) -> None:
        draft = self._require_draft()
        if draft.uploading:
            log.info("upload_abandoned", draft=draft.token, session=draft.session.token)
        draft.session = None
        draft.preview_url = None
        draft.durable_url = None

    def _require_draft(self) -> Draft:
        if self._draft is None:
            raise RuntimeError("No draft is open")
        return self._draft

    def _is_active(self, session: UploadSession) -> bool:
        draft = self._draft
        return draft is not None and draft.session is not None and draft.session.token == session.token

    async def select_file(self, file: LocalFile) -> UploadSession:
        """Validate, preview and upload ``file`` as the Draft's cover.

        Returns the session in its final state. A file that fails local
        validation leaves the session idle and the Draft untouched.
        """
        draft = self._require_draft()
        session = UploadSession(filename=file.name)

        try:
            validate_image(file.content_type, file.size)
        except ValidationError as e:
            session.error = e
            log.info("file_rejected", filename=file.name, reason=e.reason, size=file.size)
            self.notifier.error(_REJECTION_TITLES.get(e.reason, "Invalid File"), e.message)
            return session

        draft.session = session
        draft.preview_url = None
        draft.durable_url = None
        session.advance(SessionState.PREVIEWING)

        preview = await asyncio.to_thread(preview_url, file)
        if not self._is_active(session):
            log.info("stale_preview_discarded", session=session.token)
            return session
        draft.preview_url = preview

        session.advance(SessionState.UPLOADING)
        log.info("upload_started", session=session.token, filename=file.name, size=file.size)
        try:
            url = await asyncio.wait_for(self.gateway.upload(file), timeout=self.upload_timeout)
        except asyncio.TimeoutError:
            self._fail(session, UploadTimeout(self.upload_timeout))
            return session
        except CatalogError as e:
            self._fail(session, e)
            return session
        except asyncio.CancelledError:
            self._fail(session, InternalError("Upload cancelled"), notify=False)
            raise
        except Exception:
            log.exception("upload_crashed", session=session.token, filename=file.name)
            self._fail(session, InternalError("Upload failed"))
            return session

        session.advance(SessionState.SUCCEEDED)
        if not self._is_active(session):
            log.info("stale_upload_discarded", session=session.token, outcome="succeeded")
            return session
        self._draft.durable_url = url
        log.info("upload_succeeded", session=session.token, url=url)
        self.notifier.success("Image Uploaded", "Book cover has been uploaded successfully")
        return session

    def _fail(self, session: UploadSession, error: CatalogError, notify: bool = True) -> None:
        session.error = error
        session.advance(SessionState.FAILED)
        if not self._is_active(session):
            log.info("stale_upload_discarded", session=session.token, outcome="failed")
            return
        self._draft.durable_url = None
        log.warning("upload_failed", session=session.token, error=str(error))
        if notify:
            self.notifier.error("Upload Error", str(error) or "Failed to upload image")

    async def submit(self) -> BookRecord | None:
        """Commit the open Draft as a Book Record.

        Returns the record, or None when the submission was refused; the
        reason is reported through the notifier and the Draft stays open.
        """
        draft = self._require_draft()
        if draft.uploading:
            self.notifier.error("Please Wait", "Image is still uploading. Please wait a moment.")
            return None
        if draft.committing:
            self.notifier.error("Please Wait", "This book is still being saved.")
            return None

        try:
            fields = validate_book_fields(draft.title, draft.author, draft.genre, draft.published_year)
        except ValidationError as e:
            self.notifier.error("Error", e.message)
            return None

        record = BookRecord(id=new_book_id(), cover_image=draft.effective_cover(), **fields)

        if self.store is None:
            self.view.add_local(record)
        else:
            draft.committing = True
            try:
                record = await self.store.insert(record)
            except CatalogError as e:
                log.warning("submit_failed", draft=draft.token, error=str(e))
                self.notifier.error("Error", f'Could not save "{record.title}": {e}')
                return None
            finally:
                draft.committing = False

        if self._draft is draft:
            self._draft = None
        log.info("book_submitted", id=record.id, title=record.title, cover=record.cover_image[:80])
        self.notifier.success("Success!", f'"{record.title}" has been added to your library')
        return record
