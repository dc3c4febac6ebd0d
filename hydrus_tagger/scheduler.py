"""
Eval and daemon scheduling for the Hydrus Auto-Tagger.
"""

import asyncio
import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import List, Optional, Sequence, Union

from rich.progress import BarColumn, MofNCompleteColumn, Progress, TextColumn, TimeElapsedColumn

from .exceptions import ConfigurationError
from .logging import MetricsLogger, get_logger
from .models import BatchResult, ItemResult
from .tagger import Tagger

logger = get_logger("scheduler")


def parse_hashes_file(path: Union[str, Path]) -> List[str]:
    """Read a newline-delimited list of hashes, ignoring blank lines."""
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"Cannot read hashes file {path}: {e}") from e
    return [line.strip() for line in text.splitlines() if line.strip()]


def load_worklist(
    tagger: Tagger,
    service_key: str,
    hashes: Optional[Sequence[str]] = None,
    hashes_file: Optional[Union[str, Path]] = None,
    untagged: bool = False,
) -> List[str]:
    """Build the eval worklist from exactly one source.

    Returns an empty list when no source is given.
    """
    sources = sum([bool(hashes), hashes_file is not None, bool(untagged)])
    if sources > 1:
        raise ConfigurationError("Only one of hashes, hashes file or untagged search may be used")

    if hashes:
        return list(hashes)
    if hashes_file is not None:
        return parse_hashes_file(hashes_file)
    if untagged:
        return tagger.get_untagged_images(service_key)
    return []


def _tag_one(
    tagger: Tagger,
    service_key: str,
    file_hash: str,
    dry_run: bool,
    metrics: Optional[MetricsLogger],
    stop_event: Optional[threading.Event] = None,
) -> ItemResult:
    """Tag one file, turning any failure into a failed result."""
    if stop_event is not None and stop_event.is_set():
        return ItemResult(file_hash=file_hash, success=False, error="Cancelled")

    start_time = time.monotonic()
    try:
        tags = tagger.tag_image(service_key, file_hash, dry_run)
    except Exception as e:
        processing_time = time.monotonic() - start_time
        if metrics:
            metrics.log_image_failure(file_hash, str(e))
        else:
            logger.warning(f"Image processing failed: {file_hash} | Error: {e}")
        return ItemResult(file_hash=file_hash, success=False, error=str(e), processing_time=processing_time)

    processing_time = time.monotonic() - start_time
    if metrics:
        metrics.log_image_processed(file_hash, len(tags), processing_time)
    return ItemResult(file_hash=file_hash, success=True, tags=tags, processing_time=processing_time)


def process_batch(
    tagger: Tagger,
    service_key: str,
    hashes: Sequence[str],
    dry_run: bool = False,
    max_workers: Optional[int] = None,
    metrics: Optional[MetricsLogger] = None,
    show_progress: bool = True,
    stop_event: Optional[threading.Event] = None,
) -> BatchResult:
    """Tag ``hashes`` on a bounded worker pool.

    A failing file never stops the others; it is logged and counted.
    Files still queued when ``stop_event`` is set, or when the caller is
    interrupted, are dropped without being tagged.
    """
    if not hashes:
        return BatchResult.empty()

    workers = max_workers or os.cpu_count() or 1
    start_time = time.monotonic()
    results: List[ItemResult] = []

    progress = Progress(
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        TimeElapsedColumn(),
        disable=not show_progress,
        transient=True,
    )
    with progress, ThreadPoolExecutor(max_workers=workers, thread_name_prefix="tagger") as executor:
        task = progress.add_task("Tagging", total=len(hashes))
        futures = [
            executor.submit(_tag_one, tagger, service_key, file_hash, dry_run, metrics, stop_event)
            for file_hash in hashes
        ]
        try:
            for future in as_completed(futures):
                results.append(future.result())
                progress.advance(task)
        except BaseException:
            executor.shutdown(wait=False, cancel_futures=True)
            raise

    batch_time = time.monotonic() - start_time
    successful = sum(1 for r in results if r.success)
    failed = len(results) - successful
    total_tags_assigned = sum(len(r.tags) for r in results if r.success)

    rate_per_second = len(results) / batch_time if batch_time > 0 else 0
    status_msg = f"📊 Batch: {successful} tagged"
    if failed > 0:
        status_msg += f", {failed} failed"
    logger.info(
        f"{status_msg} | {total_tags_assigned} tags {'found' if dry_run else 'added'} | "
        f"Rate: {rate_per_second:.1f}/sec | Elapsed: {batch_time:.1f}s"
    )

    return BatchResult(
        batch_size=len(hashes),
        successful=successful,
        failed=failed,
        total_tags_assigned=total_tags_assigned,
        processing_time=batch_time,
        results=results,
    )


def run_eval(
    tagger: Tagger,
    tag_service: str,
    hashes: Optional[Sequence[str]] = None,
    hashes_file: Optional[Union[str, Path]] = None,
    untagged: bool = False,
    dry_run: bool = False,
    max_workers: Optional[int] = None,
    metrics: Optional[MetricsLogger] = None,
    show_progress: bool = True,
) -> BatchResult:
    """Tag an explicit set of files once.

    Resolution and worklist errors propagate; per-file errors do not.
    """
    service_key = tagger.resolve_tag_service_key(tag_service)
    worklist = load_worklist(tagger, service_key, hashes, hashes_file, untagged)

    if not worklist:
        logger.info("✅ Nothing to do")
        return BatchResult.empty()

    logger.info(f"🎯 Tagging {len(worklist)} images{' (dry run)' if dry_run else ''}")
    return process_batch(tagger, service_key, worklist, dry_run, max_workers, metrics, show_progress)


def compute_sleep(interval: float, elapsed: float) -> float:
    """Seconds left in the current cycle, never negative."""
    return max(0.0, interval - elapsed)


class Daemon:
    """Repeatedly tags untagged images on a fixed cadence."""

    def __init__(
        self,
        tagger: Tagger,
        tag_service: str,
        interval_minutes: float,
        dry_run: bool = False,
        max_workers: Optional[int] = None,
        metrics: Optional[MetricsLogger] = None,
    ):
        self.logger = get_logger("daemon")
        self.tagger = tagger
        self.tag_service = tag_service
        self.interval = interval_minutes * 60
        self.dry_run = dry_run
        self.max_workers = max_workers
        self.metrics = metrics or MetricsLogger()
        self.service_key: Optional[str] = None
        self.running = False
        self._stop_event = threading.Event()
        self._sleep = asyncio.sleep
        self._clock = time.monotonic

    def run_cycle(self) -> Optional[BatchResult]:
        """Query and tag once. Returns None when the query failed."""
        self.metrics.log_cycle()
        try:
            hashes = self.tagger.get_untagged_images(self.service_key)
        except Exception as e:
            self.logger.error(f"❌ Searching for untagged images failed: {e}")
            return None

        if not hashes:
            self.logger.info("✅ No untagged images found")
            return BatchResult.empty()

        self.logger.info(f"🎯 Found {len(hashes)} untagged images")
        return process_batch(
            self.tagger,
            self.service_key,
            hashes,
            self.dry_run,
            self.max_workers,
            self.metrics,
            show_progress=False,
            stop_event=self._stop_event,
        )

    async def run(self, max_cycles: Optional[int] = None):
        """Run until stopped, or for ``max_cycles`` cycles."""
        self.service_key = await asyncio.to_thread(self.tagger.resolve_tag_service_key, self.tag_service)
        self._stop_event.clear()
        self.running = True
        self.logger.info(f"⏰ Daemon started - interval {self.interval / 60:g} minutes")

        cycle_count = 0
        while self.running:
            if max_cycles is not None and cycle_count >= max_cycles:
                self.logger.info(f"🔢 Reached maximum cycles: {max_cycles}")
                break
            cycle_count += 1

            loop_start = self._clock()
            await asyncio.to_thread(self.run_cycle)

            sleep_for = compute_sleep(self.interval, self._clock() - loop_start)
            self.logger.debug(f"💤 Sleeping {sleep_for:.1f}s until next cycle")
            await self._sleep(sleep_for)

        self.running = False

    def stop(self):
        """Stop the loop and drop images still queued in the current cycle."""
        self.logger.info("Stopping daemon")
        self.running = False
        self._stop_event.set()
