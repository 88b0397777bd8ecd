"""Background upload: parse, normalise and reconcile one file."""
from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from datetime import date
from typing import Callable, Iterable, List, Mapping, Optional, Sequence, Set

from ..config import UploadSettings
from ..errors import LqsPipelineError, ParseError, ParseTimeoutError
from ..factory import build_pacing
from ..ingestion.mapping import apply_overrides, suggest_mapping
from ..ingestion.models import ColumnMapping, NormalizedRecord, ParseResult
from ..ingestion.normalizer import normalize_rows
from ..ingestion.parser import detect_format, parse_tabular
from ..models import ImportKind, UploadResult
from ..rate_limit import DelayPolicy, RateLimiter
from ..reconcile import HouseholdReconciler
from ..store.base import DataStore
from .tasks import REGISTRY, TaskCallback, UploadContext, UploadRegistry, UploadState, UploadTask

LOGGER = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]
PostCompletionHook = Callable[[List[str], UploadTask], None]
Parser = Callable[..., ParseResult]

SHEET_HINTS: Mapping[ImportKind, Sequence[str]] = {
    ImportKind.QUOTE: ("detail", "conversion"),
    ImportKind.SALE: ("sale", "sold", "issued"),
}
HEADER_HINTS: Mapping[ImportKind, Sequence[str]] = {
    ImportKind.QUOTE: ("first name", "last name", "customer name", "zip", "premium", "sub producer"),
    ImportKind.SALE: ("first name", "last name", "customer name", "zip", "premium", "policy"),
}


def _batches(records: Sequence[NormalizedRecord], size: int) -> Iterable[Sequence[NormalizedRecord]]:
    for start in range(0, len(records), size):
        yield records[start:start + size]


class UploadOrchestrator:
    """Runs uploads in the background and reports through the registry.

    ``start`` returns immediately; the caller may go away and later look the
    upload up (or subscribe to it) through :data:`REGISTRY` by id.
    """

    def __init__(
        self,
        store: DataStore,
        *,
        settings: Optional[UploadSettings] = None,
        registry: Optional[UploadRegistry] = None,
        post_completion_hooks: Iterable[PostCompletionHook] = (),
        parser: Parser = parse_tabular,
        delay_policy: Optional[DelayPolicy] = None,
        rate_limiter: Optional[RateLimiter] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.store = store
        self.settings = settings or UploadSettings()
        self.registry = registry or REGISTRY
        self.post_completion_hooks = list(post_completion_hooks)
        self._parser = parser
        default_delay, default_limiter = build_pacing(self.settings)
        self._delay_policy = delay_policy or default_delay
        self._rate_limiter = rate_limiter or default_limiter
        self._sleep = sleep
        self._lock = threading.Lock()
        self._parse_threads: Set[threading.Thread] = set()

    # ------------------------------------------------------------------
    def start(
        self,
        data: bytes,
        filename: str,
        kind: ImportKind,
        context: UploadContext,
        *,
        mapping: Optional[ColumnMapping | Mapping[str, object]] = None,
        on_complete: Optional[TaskCallback] = None,
        on_progress: Optional[ProgressCallback] = None,
        content_type: Optional[str] = None,
    ) -> UploadTask:
        """Schedule the upload and return its task without waiting.

        Unsupported file types are rejected here, before anything is scheduled.
        A second upload of the same kind for the same agency raises
        :class:`~lqs_pipeline.errors.UploadInProgressError` while the first runs.
        """

        detect_format(filename, content_type)
        if context.as_of is None:
            context.as_of = date.today()
        task = UploadTask(kind, context, filename)
        if on_complete is not None:
            task.add_callback(on_complete)

        def work(current: UploadTask) -> None:
            self._execute(current, data, mapping, on_progress, content_type)

        return self.registry.schedule(task, work)

    def run(
        self,
        data: bytes,
        filename: str,
        kind: ImportKind,
        context: UploadContext,
        *,
        mapping: Optional[ColumnMapping | Mapping[str, object]] = None,
        on_progress: Optional[ProgressCallback] = None,
        content_type: Optional[str] = None,
    ) -> UploadResult:
        """Synchronous variant of :meth:`start` for scripts and the CLI."""

        task = self.start(
            data,
            filename,
            kind,
            context,
            mapping=mapping,
            on_progress=on_progress,
            content_type=content_type,
        )
        return task.outcome()

    # ------------------------------------------------------------------
    def _execute(
        self,
        task: UploadTask,
        data: bytes,
        mapping: Optional[ColumnMapping | Mapping[str, object]],
        on_progress: Optional[ProgressCallback],
        content_type: Optional[str],
    ) -> None:
        try:
            task.transition(UploadState.PARSING)
            parsed = self._parse(task, data, content_type)
            column_mapping = self._resolve_mapping(parsed.headers, mapping)

            task.transition(UploadState.UPLOADING)
            result = self._upload(task, parsed, column_mapping, on_progress)
        except ParseTimeoutError as exc:
            LOGGER.error("Upload %s timed out while parsing %s", task.upload_id, task.filename)
            task.finish(error=exc)
            return
        except LqsPipelineError as exc:
            LOGGER.error("Upload %s failed: %s", task.upload_id, exc)
            task.finish(error=exc)
            return
        except Exception as exc:
            LOGGER.exception("Upload %s failed unexpectedly", task.upload_id)
            task.finish(error=exc)
            return

        LOGGER.info(
            "Upload %s finished: %s processed, %s created, %s updated, %s skipped",
            task.upload_id,
            result.records_processed,
            result.households_created,
            result.households_updated,
            result.rows_skipped,
        )
        self._run_hooks(task, result)
        task.finish(result=result)

    def _parse(self, task: UploadTask, data: bytes, content_type: Optional[str]) -> ParseResult:
        timeout = self.settings.parse_timeout_seconds
        future: Future = Future()

        def target() -> None:
            if not future.set_running_or_notify_cancel():
                return
            try:
                future.set_result(
                    self._parser(
                        data,
                        task.filename,
                        content_type=content_type,
                        header_hints=HEADER_HINTS.get(task.kind),
                        sheet_hints=SHEET_HINTS.get(task.kind),
                    )
                )
            except BaseException as exc:
                future.set_exception(exc)
            finally:
                with self._lock:
                    self._parse_threads.discard(threading.current_thread())

        # one thread per parse; a timed-out parse cannot be stopped
        thread = threading.Thread(target=target, name=f"lqs-parse-{task.upload_id}", daemon=True)
        with self._lock:
            self._parse_threads.add(thread)
        thread.start()
        try:
            parsed = future.result(timeout=timeout)
        except FutureTimeoutError as exc:
            raise ParseTimeoutError(timeout) from exc
        if not parsed.success:
            raise ParseError(parsed.errors or [f"Could not parse '{task.filename}'"])
        LOGGER.info("Parsed %s rows from %s", parsed.total_rows, task.filename)
        return parsed

    @staticmethod
    def _resolve_mapping(
        headers: Sequence[str], mapping: Optional[ColumnMapping | Mapping[str, object]]
    ) -> ColumnMapping:
        if isinstance(mapping, ColumnMapping):
            return mapping
        suggested = suggest_mapping(headers)
        if mapping:
            apply_overrides(suggested, mapping)
        return suggested

    def _upload(
        self,
        task: UploadTask,
        parsed: ParseResult,
        mapping: ColumnMapping,
        on_progress: Optional[ProgressCallback],
    ) -> UploadResult:
        normalized = normalize_rows(
            parsed.all_rows,
            mapping,
            task.kind,
            as_of=task.context.as_of,
            phone_comparison=self.settings.phone_comparison,
        )
        result = UploadResult(kind=task.kind)
        result.records_processed += len(normalized.errors)
        result.errors.extend(normalized.errors)

        reconciler = HouseholdReconciler(
            self.store,
            task.agency_id,
            task.kind,
            lead_source_id=task.context.lead_source_id,
            team_members=self.store.list_team_members(task.agency_id),
            phone_comparison=self.settings.phone_comparison,
            rate_limiter=self._rate_limiter,
        )

        records = normalized.records
        total = len(records)
        batch_count = (total + self.settings.batch_size - 1) // self.settings.batch_size
        processed = 0
        for number, batch in enumerate(_batches(records, self.settings.batch_size), start=1):
            reconciler.reconcile_all(batch, result)
            processed += len(batch)
            task.progress = (processed, total)
            LOGGER.info("Upload %s: batch %s/%s done (%s/%s records)", task.upload_id, number, batch_count, processed, total)
            if on_progress is not None:
                on_progress(processed, total)
            if number < batch_count:
                self._delay_policy.wait(self._sleep)

        result.errors.sort(key=lambda error: error.row)
        return result

    def _run_hooks(self, task: UploadTask, result: UploadResult) -> None:
        if not result.created_household_ids:
            return
        for hook in self.post_completion_hooks:
            try:
                hook(list(result.created_household_ids), task)
            except Exception:
                LOGGER.exception("Post-completion hook failed for upload %s", task.upload_id)

    def shutdown(self, wait: bool = False, timeout: Optional[float] = None) -> None:
        """Optionally join parse threads that are still running."""

        if not wait:
            return
        with self._lock:
            threads = list(self._parse_threads)
        for thread in threads:
            thread.join(timeout)


__all__ = ["HEADER_HINTS", "SHEET_HINTS", "UploadOrchestrator"]
