"""
Thread-safe metrics logging with batched writes.

Usage:
    metrics = MetricsWriter(config.metrics_file)
    metrics.log("dispatch", provider="cloud", latency_ms=234)
"""

import json
import time
import threading
from queue import Queue, Empty
from pathlib import Path
from typing import Any, Optional

from .types import DispatchRecord


class MetricsWriter:
    """
    Thread-safe metrics writer with atomic appends.
    Uses a queue to batch writes from multiple threads.
    """

    def __init__(self, metrics_file: Path):
        self.metrics_file = Path(metrics_file)
        self._queue: Queue[dict] = Queue()
        self._shutdown = threading.Event()
        self._writer_thread = threading.Thread(target=self._writer_loop, daemon=True)
        self._writer_thread.start()

    def log(self, event: str, **kwargs: Any) -> None:
        """
        Queue a metric for writing. Non-blocking.

        Args:
            event: Event name (e.g., "dispatch", "formatting")
            **kwargs: Additional fields to log
        """
        entry = {
            "ts": time.time(),
            "event": event,
            **kwargs
        }
        self._queue.put(entry)

    def _writer_loop(self) -> None:
        """Background thread that batches and writes metrics."""
        while not self._shutdown.is_set():
            try:
                # Wait for first entry
                entries = [self._queue.get(timeout=1.0)]

                # Drain queue (batch writes)
                while True:
                    try:
                        entries.append(self._queue.get_nowait())
                    except Empty:
                        break

                self._write_entries(entries)

            except Empty:
                continue

    def _write_entries(self, entries: list[dict]) -> None:
        """Write entries to file."""
        try:
            self.metrics_file.parent.mkdir(parents=True, exist_ok=True)

            with open(self.metrics_file, "a") as f:
                for entry in entries:
                    f.write(json.dumps(entry, default=str) + "\n")
        except OSError as e:
            print(f"Failed to write metrics: {e}")

    def flush(self) -> None:
        """Flush any pending metrics to disk."""
        entries = []
        while True:
            try:
                entries.append(self._queue.get_nowait())
            except Empty:
                break

        if entries:
            self._write_entries(entries)

    def shutdown(self) -> None:
        """Shutdown the writer thread gracefully."""
        self._shutdown.set()
        self._writer_thread.join(timeout=2.0)
        self.flush()


# Global instance (initialized lazily)
_metrics: MetricsWriter | None = None


def get_metrics(metrics_file: Path) -> MetricsWriter:
    """Get or create the global metrics writer."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsWriter(metrics_file)
    return _metrics


# Typed helper functions for consistent event logging

def log_session_start(
    metrics: MetricsWriter,
    session_id: str,
    provider: str,
    language: Optional[str],
    vocabulary_size: int,
    formatting_enabled: bool,
) -> None:
    """Log session_start event."""
    metrics.log(
        "session_start",
        session_id=session_id,
        provider=provider,
        language=language,
        vocabulary_size=vocabulary_size,
        formatting_enabled=formatting_enabled,
    )


def log_dispatch(metrics: MetricsWriter, session_id: str, record: DispatchRecord) -> None:
    """Log one provider dispatch (a transcription call or a skipped one)."""
    metrics.log(
        "dispatch",
        session_id=session_id,
        provider=record.provider,
        sample_count=record.sample_count,
        is_final=record.is_final,
        latency_ms=record.latency_ms,
        text_length=record.text_length,
        skipped=record.skipped,
    )


def log_formatting(
    metrics: MetricsWriter,
    session_id: str,
    model_id: Optional[str],
    latency_ms: float,
    input_length: int,
    output_length: int,
) -> None:
    """Log formatting event. model_id is None when the raw text was kept."""
    metrics.log(
        "formatting",
        session_id=session_id,
        model_id=model_id,
        latency_ms=latency_ms,
        input_length=input_length,
        output_length=output_length,
    )


def log_stale_response(metrics: MetricsWriter, session_id: str, generation: int, current: int) -> None:
    """Log a provider result discarded because the session was reset."""
    metrics.log(
        "stale_response",
        session_id=session_id,
        generation=generation,
        current_generation=current,
    )


def log_session_cancelled(metrics: MetricsWriter, session_id: str) -> None:
    metrics.log("session_cancelled", session_id=session_id)


def log_session_complete(
    metrics: MetricsWriter,
    session_id: str,
    total_duration_ms: float,
    chunks: int,
    final_text: str,
    error: Optional[str] = None,
) -> None:
    """Log session_complete event."""
    metrics.log(
        "session_complete",
        session_id=session_id,
        total_duration_ms=total_duration_ms,
        chunks=chunks,
        final_text=final_text[:500],  # Truncate for metrics
        error=error,
    )
