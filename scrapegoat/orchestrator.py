"""
Job Orchestrator
================
Drives one job through its lifecycle:

    pending → crawling → processing → completed   (or failed)

1. **Crawl** the site (or fetch the single page) and record its pages
2. **Generate** one Word document per page: extract → images → synthesize
   → serialize
3. **Pack** the job's documents into a ZIP archive
4. **Notify** the submitter (never affects the job's final status)

Progress: 0-50 while crawling, ``50 + 40 * processed / total`` while
generating, 100 on completion. A failed job keeps its last progress value
and carries the failure message in ``error``.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Callable, Optional, Union

from .archive import pack
from .crawler import CRAWL_PROGRESS_SPAN, Crawler
from .errors import FetchError, JobStateError, NoPagesError, ScrapegoatError
from .extractor import extract_content
from .fetcher import Fetcher
from .images import IMAGES_DIRNAME, collect_images
from .models import Job, JobOptions, JobStatus, Page, new_job_id
from .notifier import LogNotifier, Notifier
from .run_config import JobRunConfig
from .scraper import extract_title, parse_html
from .store import JobStore
from .synthesizer import DEFAULT_POLICY, SynthesisPolicy, synthesize
from .utils import is_valid_url
from .word_exporter import DocumentSerializer

logger = logging.getLogger(__name__)

GENERATION_PROGRESS_SPAN = 40
DOCUMENTS_DIRNAME = "documents"
ARCHIVE_FILENAME = "output.zip"


class JobOrchestrator:
    """
    Runs crawl-and-convert jobs against a job store.

    Jobs run synchronously via ``run()`` or in the background via
    ``start()``; a background job reports failure only through its
    persisted status and ``error`` field.
    """

    def __init__(
        self,
        store: JobStore,
        config: Optional[JobRunConfig] = None,
        fetcher: Optional[Fetcher] = None,
        notifier: Optional[Notifier] = None,
        synthesis_policy: SynthesisPolicy = DEFAULT_POLICY,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.store = store
        self.config = config or JobRunConfig()
        self._owns_fetcher = fetcher is None
        self.fetcher = fetcher or Fetcher(self.config.to_fetch_config())
        self.notifier = notifier or LogNotifier()
        self.synthesis_policy = synthesis_policy
        self._clock = clock
        self._sleep = sleep
        self._executor: Optional[ThreadPoolExecutor] = None
        self._executor_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def submit(self, url: str, options: Union[JobOptions, dict, None] = None) -> str:
        """
        Create a pending job.

        Raises:
            ValueError: if *url* is not an absolute HTTP(S) URL
        """
        url = (url or "").strip()
        if not is_valid_url(url):
            raise ValueError(f"Invalid URL: {url!r}")
        if not isinstance(options, JobOptions):
            options = JobOptions.from_dict(options)

        job = self.store.create_job(Job(id=new_job_id(), url=url, options=options))
        logger.info(f"[JOB] Created {job.id} for {url}")
        return job.id

    def status(self, job_id: str) -> Optional[dict]:
        """Status payload for *job_id*, or None for an unknown job."""
        job = self.store.get_job(job_id)
        if job is None:
            return None
        base = self.config.public_base_url.rstrip("/")
        return job.to_status_dict(download_url=f"{base}/jobs/{job_id}/download")

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def start(self, job_id: str) -> Future:
        """Schedule *job_id* on the background pool."""
        with self._executor_lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=max(1, self.config.job_workers),
                    thread_name_prefix="scrapegoat-job",
                )
            return self._executor.submit(self.run, job_id)

    def run(self, job_id: str) -> Job:
        """
        Run *job_id* to a terminal state and return the final job.

        Raises:
            KeyError: unknown job
            JobStateError: the job is not pending
        """
        job = self.store.get_job(job_id)
        if job is None:
            raise KeyError(job_id)
        if job.status != JobStatus.PENDING:
            raise JobStateError(f"Job {job_id} is {job.status.value}, expected pending")

        started = self._clock()
        mode = "single page" if job.options.single_page_only else "crawl"
        logger.info(f"[JOB] Starting {job_id} ({mode}) — {job.url}")

        try:
            self.store.update_job(job_id, status=JobStatus.CRAWLING, progress=0)
            if job.options.single_page_only:
                self._record_single_page(job)
            else:
                self._crawl(job)

            processed = self._generate_documents(job)
            archive_path = pack(
                self._documents_dir(job_id),
                self.config.job_dir(job_id) / ARCHIVE_FILENAME,
            )
            job = self.store.update_job(
                job_id,
                status=JobStatus.COMPLETED,
                progress=100,
                processed_pages=processed,
                archive_path=str(archive_path),
            )
        except Exception as e:
            # Unexpected failures get a traceback; known ones just the message
            logger.error(
                f"[JOB] {job_id} failed: {e}",
                exc_info=not isinstance(e, ScrapegoatError),
            )
            return self._fail(job_id, e)

        logger.info(
            f"[JOB] {job_id} completed — {job.processed_pages}/{job.total_pages} pages "
            f"in {self._clock() - started:.1f}s → {job.archive_path}"
        )
        self._notify(job)
        return job

    def shutdown(self, wait: bool = True) -> None:
        with self._executor_lock:
            if self._executor is not None:
                self._executor.shutdown(wait=wait)
                self._executor = None
        if self._owns_fetcher:
            self.fetcher.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown()

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    def _record_single_page(self, job: Job) -> None:
        self.store.update_job(job.id, total_pages=1, processed_pages=0)

        title = job.url
        try:
            result = self.fetcher.fetch(job.url, timeout=self.config.fetch_timeout)
            title = extract_title(parse_html(result.html)) or job.url
        except FetchError as e:
            logger.warning(f"[JOB] {job.id} single page fetch failed ({e.message}) — title defaults to URL")

        self.store.add_page(job.id, job.url, title)
        self.store.update_job(job.id, status=JobStatus.PROCESSING, progress=CRAWL_PROGRESS_SPAN)

    def _crawl(self, job: Job) -> None:
        crawler = Crawler(
            self.fetcher,
            self.store,
            self.config.to_crawl_config(),
            clock=self._clock,
            sleep=self._sleep,
        )
        crawler.set_progress_callback(
            lambda progress, visited, url: self.store.update_job(job.id, progress=progress)
        )
        result = crawler.run(job.id, job.url, job.options.follow_all_domains)

        pages = self.store.list_pages(job.id)
        if not pages:
            raise NoPagesError(
                f"No pages could be crawled from {job.url} "
                f"({len(result.errors)} fetch errors)"
            )
        self.store.update_job(
            job.id,
            status=JobStatus.PROCESSING,
            progress=CRAWL_PROGRESS_SPAN,
            total_pages=len(pages),
            processed_pages=0,
        )

    def _generate_documents(self, job: Job) -> int:
        """Generate every page's document; returns the number generated."""
        pages = self.store.list_pages(job.id)
        total = len(pages)
        serializer = DocumentSerializer(self._documents_dir(job.id))
        progress_lock = threading.Lock()
        processed = 0

        logger.info(f"[JOB] {job.id} generating documents for {total} pages")

        def on_done(page: Page, path: Path) -> None:
            nonlocal processed
            self.store.update_page(page.id, str(path))
            with progress_lock:
                processed += 1
                self.store.update_job(
                    job.id,
                    progress=CRAWL_PROGRESS_SPAN + (GENERATION_PROGRESS_SPAN * processed) // total,
                    processed_pages=processed,
                )

        def on_error(page: Page, error: Exception) -> None:
            message = error.message if isinstance(error, FetchError) else str(error)
            logger.error(
                f"[JOB] Document for {page.url[:80]} failed: {message}",
                exc_info=not isinstance(error, (ScrapegoatError, OSError)),
            )

        workers = max(1, self.config.generation_workers)
        if workers == 1 or total == 1:
            for index, page in enumerate(pages, 1):
                logger.info(f"[JOB] [{index}/{total}] {page.url[:80]}")
                try:
                    path = self._generate_page(job, page, serializer)
                except Exception as e:
                    on_error(page, e)
                else:
                    on_done(page, path)
        else:
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="scrapegoat-doc") as pool:
                futures = {
                    pool.submit(self._generate_page, job, page, serializer): page
                    for page in pages
                }
                for future in as_completed(futures):
                    page = futures[future]
                    try:
                        path = future.result()
                    except Exception as e:
                        on_error(page, e)
                    else:
                        on_done(page, path)

        logger.info(f"[JOB] {job.id} generated {processed}/{total} documents")
        if processed == 0:
            raise NoPagesError(f"No documents could be generated for {job.url}")
        return processed

    def _generate_page(self, job: Job, page: Page, serializer: DocumentSerializer) -> Path:
        result = self.fetcher.fetch(
            page.url,
            render=self.config.enable_js,
            accept_error_status=True,
        )
        root = extract_content(result.html, job.options.content_selector)
        path = serializer.reserve_path(page.url)

        image_map = {}
        if job.options.include_images:
            image_map = collect_images(self.fetcher, root, page.url, path.parent / IMAGES_DIRNAME)

        doc = synthesize(
            root,
            job.options.include_images,
            base_url=page.url,
            image_map=image_map,
            policy=self.synthesis_policy,
        )
        return serializer.serialize(doc, page.title or page.url, page.url, path=path)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _documents_dir(self, job_id: str) -> Path:
        return self.config.job_dir(job_id) / DOCUMENTS_DIRNAME

    def _fail(self, job_id: str, error: Exception) -> Job:
        try:
            return self.store.update_job(job_id, status=JobStatus.FAILED, error=str(error))
        except JobStateError as e:
            logger.error(f"[JOB] Could not mark {job_id} as failed: {e}")
            return self.store.get_job(job_id)

    def _notify(self, job: Job) -> None:
        destination = job.options.notify_destination
        if not destination:
            return
        link = f"{self.config.public_base_url.rstrip('/')}/job/{job.id}"
        try:
            self.notifier.notify(job.id, destination, link)
        except Exception as e:
            logger.error(f"[NOTIFY] Notification for job {job.id} failed: {e}")
