"""Batch embedding — backfills vectors for every word in the collection.

A run walks the documents page by page. Words that already have a vector for
the active model are counted and skipped, the rest of the page goes to the
embedding client in one call, and the reshaped vectors are written in one
transaction. The first failing page stops the run; re-running only touches
words that are still missing, so a failed or cancelled run is safe to repeat.

Only one run may be active per orchestrator. Cancellation is cooperative: the
token is checked before each page and before each document, never during a
network call.
"""

from __future__ import annotations

import logging
import math
import sqlite3
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Protocol

from lexivault.semantic.embedder import EmbeddingError, embed_one, require_usable
from lexivault.semantic.normalizer import to_canonical_width
from lexivault.semantic.vector_index import EmbeddingRecord
from lexivault.store.database import StoreUnavailableError

if TYPE_CHECKING:
    from collections.abc import Callable

    from lexivault.semantic.embedder import EmbeddingClient
    from lexivault.semantic.vector_index import VectorIndex
    from lexivault.store.documents import DocumentStore
    from lexivault.store.models import Document
    from lexivault.store.profiles import SemanticProfile

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 10

# Failures that end a run: provider errors, bad payloads, store write errors
_PAGE_ERRORS = (EmbeddingError, ValueError, sqlite3.Error, StoreUnavailableError)

type ProgressCallback = Callable[[int, int, int, int], None]


class BatchState(StrEnum):
    """Lifecycle of a batch run."""

    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


class BatchAlreadyRunningError(Exception):
    """A second run was requested while one is active."""


class ProfileSource(Protocol):
    def get_active(self) -> SemanticProfile | None: ...


class CancellationToken:
    """Cooperative cancellation flag shared by one run and its controller."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass(frozen=True, slots=True)
class BatchResult:
    """Final report of a run."""

    outcome: BatchState
    total_words: int
    processed: int
    failed: int
    error: str = ""
    duration_ms: int = 0

    @property
    def success(self) -> bool:
        return self.outcome == BatchState.COMPLETED

    @property
    def remaining(self) -> int:
        return self.total_words - self.processed - self.failed


@dataclass(frozen=True, slots=True)
class BatchOptions:
    batch_size: int | None = None
    on_progress: ProgressCallback | None = None
    on_complete: Callable[[BatchResult], None] | None = None


@dataclass(slots=True)
class _RunState:
    """Transient counters of the active run."""

    token: CancellationToken
    profile: SemanticProfile
    total: int = 0
    processed: int = 0
    failed: int = 0
    error: str = ""
    started: float = field(default_factory=time.monotonic)


class BatchHandle:
    """Controls a run started with :meth:`BatchEmbeddingOrchestrator.start`."""

    def __init__(self, token: CancellationToken, future: Future[BatchResult]) -> None:
        self._token = token
        self._future = future

    def cancel(self) -> None:
        self._token.cancel()

    @property
    def done(self) -> bool:
        return self._future.done()

    def result(self, timeout: float | None = None) -> BatchResult:
        return self._future.result(timeout=timeout)


class BatchEmbeddingOrchestrator:
    """Backfills missing embeddings for all word documents."""

    def __init__(
        self,
        documents: DocumentStore,
        vectors: VectorIndex,
        client: EmbeddingClient,
        profiles: ProfileSource,
    ) -> None:
        self._documents = documents
        self._vectors = vectors
        self._client = client
        self._profiles = profiles

        self._run_lock = threading.Lock()
        self._active: _RunState | None = None
        self._state = BatchState.IDLE
        self._executor: ThreadPoolExecutor | None = None

    @property
    def state(self) -> BatchState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state == BatchState.RUNNING

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    def run(self, options: BatchOptions | None = None) -> BatchResult:
        """Run to completion on the calling thread."""
        run = self._begin()
        return self._execute(run, options or BatchOptions())

    def start(self, options: BatchOptions | None = None) -> BatchHandle:
        """Run on a worker thread and return immediately.

        Configuration errors and :class:`BatchAlreadyRunningError` are raised
        here, before any work is scheduled.
        """
        run = self._begin()
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="batch-embed")
        future = self._executor.submit(self._execute, run, options or BatchOptions())
        return BatchHandle(run.token, future)

    def cancel(self) -> None:
        """Ask the active run to stop at its next checkpoint. No-op when idle."""
        run = self._active
        if run is not None:
            run.token.cancel()
            logger.info("Batch embedding cancellation requested")

    def shutdown(self) -> None:
        """Cancel any active run and wait for the worker thread to exit."""
        self.cancel()
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def _begin(self) -> _RunState:
        if not self._run_lock.acquire(blocking=False):
            raise BatchAlreadyRunningError("Batch processing already in progress")
        try:
            profile = require_usable(self._profiles.get_active())
        except BaseException:
            self._run_lock.release()
            raise
        run = _RunState(token=CancellationToken(), profile=profile)
        self._active = run
        self._state = BatchState.RUNNING
        return run

    def _execute(self, run: _RunState, options: BatchOptions) -> BatchResult:
        try:
            outcome = self._process(run, options)
        except BaseException as e:
            # Anything unexpected still ends the run as FAILED, reported, then re-raised
            run.error = run.error or str(e) or type(e).__name__
            logger.exception("Batch embedding aborted: %s", e)
            self._finish(run, BatchState.FAILED, options)
            raise
        return self._finish(run, outcome, options)

    def _finish(self, run: _RunState, outcome: BatchState, options: BatchOptions) -> BatchResult:
        self._state = outcome
        self._active = None
        self._run_lock.release()

        result = BatchResult(
            outcome=outcome,
            total_words=run.total,
            processed=run.processed,
            failed=run.failed,
            error=run.error,
            duration_ms=int((time.monotonic() - run.started) * 1000),
        )
        logger.info(
            "Batch embedding %s: %d/%d processed, %d failed in %d ms",
            outcome.value,
            result.processed,
            result.total_words,
            result.failed,
            result.duration_ms,
        )
        if options.on_complete is not None:
            options.on_complete(result)
        return result

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    def _process(self, run: _RunState, options: BatchOptions) -> BatchState:
        model = run.profile.model
        batch_size = options.batch_size or run.profile.batch_size or DEFAULT_BATCH_SIZE

        run.total = self._documents.count()
        if run.total == 0:
            logger.info("No words to embed")
            return BatchState.COMPLETED

        total_pages = math.ceil(run.total / batch_size)
        logger.info(
            "Embedding %d words with %s in %d pages of %d",
            run.total,
            model,
            total_pages,
            batch_size,
        )

        for page_index in range(total_pages):
            if run.token.cancelled:
                logger.info("Batch cancelled before page %d/%d", page_index + 1, total_pages)
                return BatchState.CANCELLED

            offset = page_index * batch_size
            try:
                page = self._documents.get_page(offset, batch_size)
            except (sqlite3.Error, StoreUnavailableError) as e:
                run.failed += min(batch_size, run.total - offset)
                run.error = str(e)
                logger.error(
                    "Could not read page %d/%d for model %s: %s",
                    page_index + 1,
                    total_pages,
                    model,
                    e,
                )
                return BatchState.FAILED

            pending: list[Document] = []
            for doc in page:
                if run.token.cancelled:
                    logger.info("Batch cancelled during page %d/%d", page_index + 1, total_pages)
                    return BatchState.CANCELLED
                if self._vectors.exists(doc.id, model):
                    run.processed += 1
                else:
                    pending.append(doc)

            if pending:
                try:
                    self._embed_page(pending, run.profile)
                except _PAGE_ERRORS as e:
                    run.failed += len(pending)
                    run.error = str(e)
                    logger.error(
                        "Page %d/%d failed for model %s (documents %s): %s",
                        page_index + 1,
                        total_pages,
                        model,
                        ", ".join(d.id for d in pending),
                        e,
                    )
                    return BatchState.FAILED
                run.processed += len(pending)

            logger.debug(
                "Page %d/%d done: %d embedded, %d skipped",
                page_index + 1,
                total_pages,
                len(pending),
                len(page) - len(pending),
            )
            if options.on_progress is not None:
                options.on_progress(run.processed, run.total, page_index + 1, total_pages)

        return BatchState.COMPLETED

    def _embed_page(self, docs: list[Document], profile: SemanticProfile) -> None:
        texts = [doc.as_word().embedding_text() for doc in docs]
        result = self._client.embed(texts, profile)
        if len(result.vectors) != len(docs):
            raise EmbeddingError(
                f"Expected {len(docs)} embeddings, got {len(result.vectors)}",
                provider=profile.provider,
            )
        width = self._vectors.width
        self._vectors.upsert_many(
            [
                EmbeddingRecord(doc.id, to_canonical_width(vector, width), profile.model)
                for doc, vector in zip(docs, result.vectors, strict=True)
            ]
        )

    # ------------------------------------------------------------------
    # Single-document maintenance
    # ------------------------------------------------------------------

    def embed_document(self, doc_id: str) -> bool:
        """(Re-)embed one word, e.g. after it was edited. False if it does not exist."""
        profile = require_usable(self._profiles.get_active())
        doc = self._documents.get_by_id(doc_id)
        if doc is None or not doc.is_word:
            return False
        vector = embed_one(self._client, doc.as_word().embedding_text(), profile)
        self._vectors.upsert(doc.id, to_canonical_width(vector, self._vectors.width), profile.model)
        logger.info("Embedded %s with %s", doc_id, profile.model)
        return True

    def forget_document(self, doc_id: str) -> bool:
        """Drop every embedding of a document."""
        return self._vectors.delete(doc_id)
