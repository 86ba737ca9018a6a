"""
Session management for the dictation lifecycle.

A DictationSession drives one transcription provider from the first frame
to finalize() or cancel(): it snapshots context for every call, collects
chunk transcripts, and runs formatting and replacements at the end.
"""

import re
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Iterable, List, Optional, Tuple, TYPE_CHECKING
from pathlib import Path
from uuid import uuid4

import numpy as np

from .context import pre_selection_text
from .errors import TranscriptionError
from .providers import TranscriptionProvider, create_provider
from .router import FormatterRouter
from .types import AccessibilityContext, ConfigSnapshot, FormatContext, TranscribeContext
from . import metrics as metrics_log
from .metrics import get_metrics

if TYPE_CHECKING:
    from .auth import CredentialSource
    from .metrics import MetricsWriter


def pre_format_local_transcription(transcription: str, preceding_text: Optional[str]) -> str:
    """
    Handle the leading space local models emit.

    The space is dropped only when we know the text before the cursor and it
    is empty or already ends in whitespace.
    """
    if not transcription.startswith(" "):
        return transcription

    should_strip = preceding_text is not None and (
        len(preceding_text) == 0 or preceding_text[-1] in " \t\r\n"
    )
    return transcription[1:] if should_strip else transcription


def apply_replacements(text: str, replacements: Iterable[Tuple[str, str]]) -> str:
    """
    Replace vocabulary terms, case-insensitively, on whole words only.

    A match must not touch another letter or digit in any script.
    """
    if not text:
        return text

    result = text
    for word, replacement in replacements:
        if not word:
            continue
        pattern = re.compile(rf"(?<![^\W_]){re.escape(word)}(?![^\W_])", re.IGNORECASE)
        result = pattern.sub(lambda _match: replacement, result)
    return result


class DictationSession:
    """
    Represents one dictation session.

    All provider calls run on a single worker thread, in submission order,
    so a session never calls its provider concurrently. Results produced
    for a session generation that has since been cancelled are discarded.
    """

    def __init__(
        self,
        provider: TranscriptionProvider,
        config: ConfigSnapshot,
        router: Optional[FormatterRouter] = None,
        metrics: Optional["MetricsWriter"] = None,
        accessibility_context: Optional[AccessibilityContext] = None,
        session_id: Optional[str] = None,
        on_complete: Optional[Callable[["DictationSession"], None]] = None,
    ):
        self.id = session_id or str(uuid4())
        self.provider = provider
        self.config = config
        self.router = router or FormatterRouter(config)
        self.metrics = metrics
        self.accessibility_context = accessibility_context
        self.on_complete = on_complete

        # Runtime state
        self.results: List[str] = []
        self.is_active = True
        self.start_time = time.time()
        self._generation = 0
        self._reset_future: Optional["Future[None]"] = None
        self._lock = threading.Lock()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"session-{self.id[:8]}")

        if self.metrics:
            metrics_log.log_session_start(
                self.metrics,
                session_id=self.id,
                provider=provider.name,
                language=config.language,
                vocabulary_size=len(config.vocabulary),
                formatting_enabled=config.formatter.enabled,
            )

    # -- context -------------------------------------------------------

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    @property
    def aggregated_transcription(self) -> str:
        return "".join(self.results)

    def transcribe_context(self, formatting_enabled: bool = False) -> TranscribeContext:
        """Snapshot the metadata for one provider call."""
        return TranscribeContext(
            session_id=self.id,
            language=self.config.language,
            vocabulary=tuple(self.config.vocabulary),
            aggregated_transcription=self.aggregated_transcription,
            previous_chunk=self.results[-1] if self.results else None,
            accessibility_context=self.accessibility_context,
            formatting_enabled=formatting_enabled,
        )

    def format_context(self, text: str) -> FormatContext:
        return FormatContext(
            accessibility_context=self.accessibility_context,
            vocabulary=tuple(self.config.vocabulary),
            aggregated_transcription=text,
            custom_instructions=self.config.custom_instructions,
            style=self.config.formatting_style,
        )

    # -- frames --------------------------------------------------------

    def submit_frame(self, frame: np.ndarray, speech_probability: float) -> "Future[str]":
        """
        Queue a frame for transcription. Non-blocking.

        Returns:
            Future resolving to the session transcript so far
        """
        generation = self.generation
        return self._executor.submit(self._process_frame, generation, frame, speech_probability)

    def process_frame(self, frame: np.ndarray, speech_probability: float) -> str:
        """Blocking variant of submit_frame()."""
        return self.submit_frame(frame, speech_probability).result()

    def _process_frame(self, generation: int, frame: np.ndarray, speech_probability: float) -> str:
        # Frames queued before a cancel() belong to the old session
        if not self.is_active or not self._is_current(generation):
            return ""

        previous_dispatch = getattr(self.provider, "last_dispatch", None)
        try:
            text = self.provider.transcribe(frame, speech_probability, self.transcribe_context())
        except TranscriptionError as e:
            print(f"[Session] Transcription failed ({type(e).__name__}): {e}")
            raise
        self._log_dispatch(previous_dispatch)

        if not self._accept(generation):
            return ""

        self._apply_result(text)
        return self.aggregated_transcription

    # -- finalize / cancel --------------------------------------------

    def submit_finalize(self) -> "Future[str]":
        """Queue finalization behind any pending frames. Non-blocking."""
        generation = self.generation
        return self._executor.submit(self._finalize, generation)

    def finalize(self) -> str:
        """Flush, format, apply replacements. Blocking."""
        return self.submit_finalize().result()

    def _finalize(self, generation: int) -> str:
        if not self.is_active or not self._is_current(generation):
            return ""

        error: Optional[str] = None
        complete = ""
        try:
            uses_aggregated = self.provider.returns_aggregated
            cloud_formatting = self.router.uses_cloud_formatting and uses_aggregated
            if self.router.uses_cloud_formatting and not uses_aggregated:
                print("[Session] Cloud formatting requires cloud transcription, skipping")

            previous_dispatch = getattr(self.provider, "last_dispatch", None)
            try:
                final_text = self.provider.flush(self.transcribe_context(formatting_enabled=cloud_formatting))
            except TranscriptionError as e:
                error = f"{type(e).__name__}: {e}"
                print(f"[Session] Final transcription failed ({type(e).__name__}): {e}")
                raise
            self._log_dispatch(previous_dispatch)

            if not self._accept(generation):
                return ""

            self._apply_result(final_text)
            complete = self.aggregated_transcription

            if not uses_aggregated:
                complete = pre_format_local_transcription(
                    complete, pre_selection_text(self.accessibility_context)
                )

            if self.config.formatter.enabled and not self.router.uses_cloud_formatting:
                outcome = self.router.format(complete, self.format_context(complete))
                if self.metrics:
                    metrics_log.log_formatting(
                        self.metrics,
                        session_id=self.id,
                        model_id=outcome.model_id,
                        latency_ms=outcome.latency_ms,
                        input_length=len(complete),
                        output_length=len(outcome.text),
                    )
                complete = outcome.text

            complete = apply_replacements(complete, self.config.replacements)
            print(f"[Session] Completed: {len(self.results)} chunks, {len(complete)} chars")
            return complete
        finally:
            self._complete(complete, error)

    def cancel(self) -> "Future[None]":
        """
        Cancel the session without output.

        Pending frames are dropped immediately. The provider reset runs after
        any call already in flight; a late response from it is discarded.
        The session stays busy until that reset has run.
        """
        with self._lock:
            if not self.is_active:
                done: "Future[None]" = Future()
                done.set_result(None)
                return done
            self._generation += 1
            self.results = []

        print(f"[Session] Cancelled {self.id}")
        if self.metrics:
            metrics_log.log_session_cancelled(self.metrics, self.id)

        self._reset_future = self._executor.submit(self.provider.reset)
        self._complete("", None)
        return self._reset_future

    @property
    def is_busy(self) -> bool:
        """Active, or cancelled with the provider reset still pending."""
        if self.is_active:
            return True
        return self._reset_future is not None and not self._reset_future.done()

    def close(self) -> None:
        """Wait for queued work and release the worker thread."""
        self._executor.shutdown(wait=True)

    # -- helpers -------------------------------------------------------

    def _is_current(self, generation: int) -> bool:
        with self._lock:
            return generation == self._generation

    def _accept(self, generation: int) -> bool:
        """Fence off responses for requests issued before a cancel()."""
        with self._lock:
            current = self._generation
        if generation == current:
            return True

        print(f"[Session] Discarding stale response (generation {generation}, current {current})")
        if self.metrics:
            metrics_log.log_stale_response(self.metrics, self.id, generation, current)
        return False

    def _apply_result(self, text: str) -> None:
        if not text.strip():
            return
        with self._lock:
            # Aggregating providers return the whole transcript so far
            if self.provider.returns_aggregated and self.results:
                self.results = [text]
            else:
                self.results.append(text)

    def _log_dispatch(self, previous_dispatch) -> None:
        record = getattr(self.provider, "last_dispatch", None)
        if self.metrics and record is not None and record is not previous_dispatch:
            metrics_log.log_dispatch(self.metrics, self.id, record)

    def _complete(self, final_text: str, error: Optional[str]) -> None:
        with self._lock:
            if not self.is_active:
                return
            self.is_active = False

        if self.metrics:
            metrics_log.log_session_complete(
                self.metrics,
                session_id=self.id,
                total_duration_ms=(time.time() - self.start_time) * 1000,
                chunks=len(self.results),
                final_text=final_text,
                error=error,
            )

        if self.on_complete:
            self.on_complete(self)


class SessionManager:
    """
    Manages the active session, rejects if busy.

    One provider instance is reused across sessions; it is reset at every
    session boundary so no audio bleeds from one session into the next.
    A cancelled session keeps the manager busy until its provider reset has
    run, so two sessions never drive the provider at the same time.
    """

    def __init__(
        self,
        config_snapshot_fn: Callable[[], ConfigSnapshot],
        credentials: Optional["CredentialSource"] = None,
        metrics: Optional["MetricsWriter"] = None,
        provider_factory: Callable[..., TranscriptionProvider] = create_provider,
    ):
        self.config_snapshot_fn = config_snapshot_fn
        self.credentials = credentials
        self.metrics = metrics
        self.provider_factory = provider_factory

        self.active_session: Optional[DictationSession] = None
        self._provider: Optional[TranscriptionProvider] = None
        self._provider_name: Optional[str] = None
        self._lock = threading.Lock()

    def start_session(self, accessibility_context: Optional[AccessibilityContext] = None) -> Optional[DictationSession]:
        """
        Create and start a new session.

        Returns None if a session is active or still winding down.
        """
        with self._lock:
            previous = self.active_session
            if previous is not None and previous.is_busy:
                print("[SessionManager] Busy, rejecting new session")
                return None

            if previous is not None:
                previous.close()

            snapshot = self.config_snapshot_fn()
            provider = self._get_provider(snapshot)
            provider.reset()

            session = DictationSession(
                provider=provider,
                config=snapshot,
                metrics=self._get_metrics(snapshot),
                accessibility_context=accessibility_context,
            )
            self.active_session = session
            return session

    def _get_provider(self, snapshot: ConfigSnapshot) -> TranscriptionProvider:
        """Reuse the provider unless the configured one changed."""
        if self._provider is not None and self._provider_name == snapshot.transcription_provider:
            return self._provider

        if self._provider is not None:
            self._provider.shutdown()

        self._provider = self.provider_factory(snapshot, self.credentials)
        self._provider_name = snapshot.transcription_provider
        return self._provider

    def _get_metrics(self, snapshot: ConfigSnapshot) -> Optional["MetricsWriter"]:
        """Explicit writer first, else the shared one for the configured file."""
        if self.metrics is not None:
            return self.metrics
        if not snapshot.metrics_enabled or not snapshot.metrics_file:
            return None
        return get_metrics(Path(snapshot.metrics_file))

    def is_busy(self) -> bool:
        """Check if a session is active or still winding down."""
        with self._lock:
            return self.active_session is not None and self.active_session.is_busy

    def shutdown(self) -> None:
        with self._lock:
            if self.active_session is not None:
                self.active_session.cancel()
                self.active_session.close()
                self.active_session = None
            if self._provider is not None:
                self._provider.shutdown()
                self._provider = None
                self._provider_name = None
