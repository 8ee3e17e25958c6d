import threading
import time
import uuid
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, Optional, Sequence

from .chat import FollowupSession
from .errors import (
    AnalysisCancelled,
    AnalysisError,
    AnalysisInProgress,
    AnalysisNotFound,
    PersistenceFailed,
)
from .extraction import prepare_request, request_analysis
from .models import Client, FinancialAnalysis
from .normalizer import UploadedFile
from .parser import parse_analysis
from .run_logger import log_step, summarize_parts
from .store import AnalysisStore, ClientRegistry


FAILURE_NOTICE = "Falha no processamento. Verifique a qualidade dos arquivos."


def run_analysis(
    income_files: Sequence[UploadedFile],
    balance_files: Sequence[UploadedFile],
    client: Client,
    llm,
    max_workers: int = 4,
    log_dir: Optional[Path] = None,
    id_factory: Optional[Callable[[], str]] = None,
    now: Optional[Callable[[], datetime]] = None,
) -> FinancialAnalysis:
    parts = prepare_request(income_files, balance_files, client, max_workers=max_workers)
    log_step(
        log_dir,
        "request_parts",
        {
            "client_id": client.id,
            "income_files": [f.name for f in income_files],
            "balance_files": [f.name for f in balance_files],
            "parts": summarize_parts(parts),
        },
    )
    try:
        raw_text = request_analysis(parts, llm)
        analysis = parse_analysis(raw_text, client.id, id_factory=id_factory, now=now)
    except AnalysisError as exc:
        log_step(log_dir, "extraction_failed", {"error": type(exc).__name__, "detail": str(exc)})
        raise
    log_step(
        log_dir,
        "analysis",
        {
            "id": analysis.id,
            "periods": [p.periodo for p in analysis.dre],
            "has_balance_sheet": analysis.balanco is not None,
        },
    )
    return analysis


def open_followup_session(
    analysis: FinancialAnalysis, llm, thinking_budget: int = 16000
) -> FollowupSession:
    return FollowupSession(llm, analysis, thinking_budget=thinking_budget)


class AnalysisService:
    """Per-client analysis state shared by the HTTP and UI surfaces.

    At most one extraction is pending per client. The external call runs
    outside the lock; its result is committed only if its token is still
    the pending one, so a reset in between discards it.
    """

    def __init__(
        self,
        llm,
        registry: ClientRegistry,
        store: AnalysisStore,
        max_workers: int = 4,
        thinking_budget: int = 16000,
        runs_dir: Optional[Path] = None,
    ) -> None:
        self.llm = llm
        self.registry = registry
        self.store = store
        self.max_workers = max_workers
        self.thinking_budget = thinking_budget
        self.runs_dir = runs_dir
        self._lock = threading.Lock()
        self._pending: Dict[str, str] = {}
        self._current: Dict[str, FinancialAnalysis] = {}
        self._chats: Dict[str, FollowupSession] = {}

    def analyze(
        self,
        client_id: str,
        income_files: Sequence[UploadedFile],
        balance_files: Sequence[UploadedFile],
    ) -> FinancialAnalysis:
        client = self.registry.get(client_id)
        token = uuid.uuid4().hex
        with self._lock:
            if client_id in self._pending:
                raise AnalysisInProgress(client_id)
            self._pending[client_id] = token

        log_dir = self._new_run_dir(token)
        try:
            analysis = run_analysis(
                income_files,
                balance_files,
                client,
                self.llm,
                max_workers=self.max_workers,
                log_dir=log_dir,
            )
        except Exception:
            self._release(client_id, token)
            raise

        with self._lock:
            if self._pending.get(client_id) != token:
                log_step(log_dir, "stale", {"client_id": client_id, "analysis_id": analysis.id})
                raise AnalysisCancelled(client_id)
            try:
                self._write_back(client_id, analysis, log_dir)
                self._current[client_id] = analysis
                self._chats.pop(client_id, None)
            finally:
                del self._pending[client_id]
        log_step(log_dir, "commit", {"client_id": client_id, "analysis_id": analysis.id})
        return analysis

    def is_pending(self, client_id: str) -> bool:
        with self._lock:
            return client_id in self._pending

    def reset(self, client_id: str) -> None:
        with self._lock:
            self._pending.pop(client_id, None)
            self._current.pop(client_id, None)
            self._chats.pop(client_id, None)

    def current(self, client_id: str) -> Optional[FinancialAnalysis]:
        with self._lock:
            cached = self._current.get(client_id)
        if cached is not None:
            return cached
        analysis = self.store.load(client_id)
        if analysis is not None:
            with self._lock:
                self._current.setdefault(client_id, analysis)
        return analysis

    def add_note(self, client_id: str, section_id: str, text: str) -> FinancialAnalysis:
        # Under the lock so a concurrent commit cannot be overwritten by a stale copy.
        with self._lock:
            analysis = self._current.get(client_id)
            if analysis is None:
                analysis = self.store.load(client_id)
            if analysis is None:
                raise AnalysisNotFound(client_id)
            updated = analysis.with_note(section_id, text)
            try:
                self.store.save(updated)
            except OSError as exc:
                raise PersistenceFailed(client_id, str(exc)) from exc
            self._current[client_id] = updated
        return updated

    def open_chat(self, client_id: str) -> FollowupSession:
        analysis = self._require_current(client_id)
        session = open_followup_session(analysis, self.llm, thinking_budget=self.thinking_budget)
        with self._lock:
            self._chats[client_id] = session
        return session

    def chat_session(self, client_id: str) -> FollowupSession:
        with self._lock:
            session = self._chats.get(client_id)
        return session or self.open_chat(client_id)

    def _require_current(self, client_id: str) -> FinancialAnalysis:
        analysis = self.current(client_id)
        if analysis is None:
            raise AnalysisNotFound(client_id)
        return analysis

    def _write_back(self, client_id: str, analysis: FinancialAnalysis, log_dir: Optional[Path]) -> None:
        """Save the analysis and stamp the client, or leave both as they were."""
        try:
            previous = self.store.backup(client_id)
        except OSError as exc:
            raise PersistenceFailed(client_id, str(exc)) from exc
        try:
            self.store.save(analysis)
            self.registry.touch(client_id, analysis.date.isoformat())
        except (OSError, ValueError) as exc:
            try:
                self.store.restore(client_id, previous)
            except OSError as restore_exc:
                log_step(log_dir, "rollback_failed", {"client_id": client_id, "detail": str(restore_exc)})
            log_step(log_dir, "persist_failed", {"client_id": client_id, "detail": str(exc)})
            raise PersistenceFailed(client_id, str(exc)) from exc

    def _release(self, client_id: str, token: str) -> None:
        with self._lock:
            if self._pending.get(client_id) == token:
                del self._pending[client_id]

    def _new_run_dir(self, token: str) -> Optional[Path]:
        if self.runs_dir is None:
            return None
        return self.runs_dir / f"run_{time.time_ns()}_{token[:8]}"
