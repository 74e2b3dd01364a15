"""
End-to-end job tests: crawl / single page → documents → archive, with a
fake fetcher and real filesystem output.
"""

import zipfile

import pytest
from docx import Document

from scrapegoat.errors import JobStateError
from scrapegoat.models import JobOptions, JobStatus
from scrapegoat.orchestrator import JobOrchestrator
from scrapegoat.store import MemoryJobStore

from conftest import FakeFetcher, page

SEED = "https://example.com/"


class RecordingStore(MemoryJobStore):
    """Memory store that remembers every progress value written."""

    def __init__(self):
        super().__init__()
        self.progress_log = []

    def update_job(self, job_id, **fields):
        job = super().update_job(job_id, **fields)
        self.progress_log.append(job.progress)
        return job


class RecordingNotifier:
    def __init__(self, fail=False):
        self.fail = fail
        self.sent = []

    def notify(self, job_id, destination, link):
        self.sent.append((job_id, destination, link))
        if self.fail:
            raise ConnectionError("mail server down")


def archive_names(job):
    with zipfile.ZipFile(job.archive_path) as zf:
        return sorted(zf.namelist())


@pytest.fixture
def make_orchestrator(run_config, clock):
    def factory(pages, store=None, notifier=None, binaries=None, **config):
        for name, value in config.items():
            setattr(run_config, name, value)
        return JobOrchestrator(
            store or MemoryJobStore(),
            run_config,
            fetcher=FakeFetcher(pages, binaries=binaries),
            notifier=notifier or RecordingNotifier(),
            clock=clock,
            sleep=clock.sleep,
        )
    return factory


class TestSubmit:

    def test_invalid_url_rejected(self, make_orchestrator):
        orchestrator = make_orchestrator({})
        with pytest.raises(ValueError):
            orchestrator.submit("example.com")
        with pytest.raises(ValueError):
            orchestrator.submit("ftp://example.com/")

    def test_creates_pending_job(self, make_orchestrator):
        orchestrator = make_orchestrator({})
        job_id = orchestrator.submit(SEED, {"singlePageOnly": True})
        job = orchestrator.store.get_job(job_id)
        assert job.status == JobStatus.PENDING
        assert job.options.single_page_only is True

    def test_status_payload(self, make_orchestrator):
        orchestrator = make_orchestrator({SEED: page("Home", "<p>Hello</p>")})
        job_id = orchestrator.submit(SEED, JobOptions(single_page_only=True))
        assert "archiveURL" not in orchestrator.status(job_id)

        orchestrator.run(job_id)
        status = orchestrator.status(job_id)
        assert status["status"] == "completed"
        assert status["archiveURL"] == f"http://localhost:3000/jobs/{job_id}/download"
        assert orchestrator.status("missing") is None


class TestSinglePage:

    def test_example_com(self, make_orchestrator):
        orchestrator = make_orchestrator({SEED: page("Example Domain", "<h1>Example</h1><p>Hello.</p>")})
        job_id = orchestrator.submit(SEED, JobOptions(single_page_only=True))
        job = orchestrator.run(job_id)

        assert job.status == JobStatus.COMPLETED
        assert job.total_pages == 1
        assert job.processed_pages == 1
        assert job.progress == 100
        assert job.completed_at is not None
        assert archive_names(job) == ["example_com/example-com.docx"]

        [stored_page] = orchestrator.store.list_pages(job_id)
        assert stored_page.title == "Example Domain"
        assert stored_page.document_path.endswith("example-com.docx")

    def test_server_error_still_completes(self, make_orchestrator):
        orchestrator = make_orchestrator({SEED: ("<html><body><p>Internal error</p></body></html>", 500)})
        job_id = orchestrator.submit(SEED, JobOptions(single_page_only=True))
        job = orchestrator.run(job_id)

        assert job.status == JobStatus.COMPLETED
        [stored_page] = orchestrator.store.list_pages(job_id)
        assert stored_page.title == SEED

    def test_unreachable_page_fails(self, make_orchestrator):
        orchestrator = make_orchestrator({})
        job_id = orchestrator.submit(SEED, JobOptions(single_page_only=True))
        job = orchestrator.run(job_id)

        assert job.status == JobStatus.FAILED
        assert job.error
        assert job.archive_path is None
        assert job.completed_at is not None

    def test_document_content(self, make_orchestrator):
        html = page("Care", '<h2>Measuring Care,</h2><p>See <a href="/more">more</a>.</p>')
        orchestrator = make_orchestrator({SEED: html})
        job = orchestrator.run(orchestrator.submit(SEED, JobOptions(single_page_only=True)))

        [stored_page] = orchestrator.store.list_pages(job.id)
        document = Document(stored_page.document_path)
        texts = [p.text for p in document.paragraphs]
        assert texts[0] == "Care"
        assert "Measuring Care," in texts

    def test_control_characters_in_text(self, make_orchestrator):
        orchestrator = make_orchestrator({SEED: page("Ti\x08tle", "<p>Hello\x08 world</p>")})
        job = orchestrator.run(orchestrator.submit(SEED, JobOptions(single_page_only=True)))

        assert job.status == JobStatus.COMPLETED
        [stored_page] = orchestrator.store.list_pages(job.id)
        texts = [p.text for p in Document(stored_page.document_path).paragraphs]
        assert "Hello world" in texts


class TestCrawlMode:

    PAGES = {
        SEED: page("Home", "<p>Welcome</p>", links=["/about", "/blog/post.html", "https://other.org/"]),
        "https://example.com/about": page("About", "<p>About us</p>"),
        "https://example.com/blog/post.html": page("Post", "<p>A post</p>"),
        "https://other.org/": page("Other", "<p>Elsewhere</p>"),
    }

    def test_same_domain_crawl(self, make_orchestrator):
        orchestrator = make_orchestrator(self.PAGES)
        job = orchestrator.run(orchestrator.submit(SEED))

        assert job.status == JobStatus.COMPLETED
        assert job.total_pages == 3
        assert job.processed_pages == 3
        assert archive_names(job) == [
            "example_com/about/about.docx",
            "example_com/blog/post.html/post.docx",
            "example_com/example-com.docx",
        ]

    def test_follow_all_domains(self, make_orchestrator):
        orchestrator = make_orchestrator(self.PAGES)
        job = orchestrator.run(orchestrator.submit(SEED, {"followAllLinks": True}))
        assert job.total_pages == 4
        assert "other_org/other-org.docx" in archive_names(job)

    def test_seed_server_error_fails(self, make_orchestrator):
        orchestrator = make_orchestrator({SEED: ("<html>oops</html>", 500)})
        job = orchestrator.run(orchestrator.submit(SEED))

        assert job.status == JobStatus.FAILED
        assert "No pages" in job.error
        assert orchestrator.store.list_pages(job.id) == []

    def test_max_urls(self, make_orchestrator):
        orchestrator = make_orchestrator(self.PAGES, max_urls=1)
        job = orchestrator.run(orchestrator.submit(SEED))
        assert job.total_pages == 1

    def test_failed_generation_skips_page(self, make_orchestrator):
        orchestrator = make_orchestrator(self.PAGES)
        job_id = orchestrator.submit(SEED)

        original_generate = orchestrator._generate_page

        def flaky(job, page_row, serializer):
            if page_row.url.endswith("/about"):
                raise OSError("disk full")
            return original_generate(job, page_row, serializer)

        orchestrator._generate_page = flaky
        job = orchestrator.run(job_id)

        assert job.status == JobStatus.COMPLETED
        assert job.total_pages == 3
        assert job.processed_pages == 2
        assert len(archive_names(job)) == 2

    def test_parallel_generation(self, make_orchestrator):
        orchestrator = make_orchestrator(self.PAGES, generation_workers=3)
        job = orchestrator.run(orchestrator.submit(SEED))
        assert job.status == JobStatus.COMPLETED
        assert job.processed_pages == 3


class TestProgress:

    def test_progress_monotonic(self, make_orchestrator):
        store = RecordingStore()
        pages = {
            SEED: page("Home", "<p>Hi</p>", links=["/a"]),
            "https://example.com/a": page("A", "<p>A</p>"),
        }
        orchestrator = make_orchestrator(pages, store=store, max_urls=2)
        job = orchestrator.run(orchestrator.submit(SEED))

        assert job.status == JobStatus.COMPLETED
        assert store.progress_log == sorted(store.progress_log)
        assert store.progress_log[-1] == 100
        assert 70 in store.progress_log and 90 in store.progress_log

    def test_failed_job_keeps_progress(self, make_orchestrator):
        store = RecordingStore()
        orchestrator = make_orchestrator({SEED: page("Home")}, store=store)
        job_id = orchestrator.submit(SEED, JobOptions(single_page_only=True))

        def broken(*args):
            raise OSError("disk full")

        orchestrator._generate_page = broken
        job = orchestrator.run(job_id)

        assert job.status == JobStatus.FAILED
        assert job.progress == 50


class TestImages:

    def test_images_packed_beside_document(self, make_orchestrator):
        html = page("Gallery", '<p>Look<img src="/static/cat.png" alt="Cat"></p><img src="/missing.gif">')
        orchestrator = make_orchestrator(
            {SEED: html},
            binaries={"https://example.com/static/cat.png": b"\x89PNG"},
        )
        job = orchestrator.run(orchestrator.submit(SEED, {"singlePageOnly": True, "includeImages": True}))

        assert archive_names(job) == [
            "example_com/example-com.docx",
            "example_com/images/image_0.png",
        ]
        [stored_page] = orchestrator.store.list_pages(job.id)
        texts = [p.text for p in Document(stored_page.document_path).paragraphs]
        assert "[Image: Cat - saved as images/image_0.png]" in texts


class TestNotification:

    def test_notified_after_completion(self, make_orchestrator):
        notifier = RecordingNotifier()
        orchestrator = make_orchestrator({SEED: page("Home", "<p>Hi</p>")}, notifier=notifier)
        job = orchestrator.run(orchestrator.submit(SEED, {"singlePageOnly": True, "email": "me@example.com"}))
        assert notifier.sent == [(job.id, "me@example.com", f"http://localhost:3000/job/{job.id}")]

    def test_notification_failure_keeps_completed(self, make_orchestrator):
        notifier = RecordingNotifier(fail=True)
        orchestrator = make_orchestrator({SEED: page("Home", "<p>Hi</p>")}, notifier=notifier)
        job = orchestrator.run(orchestrator.submit(SEED, {"singlePageOnly": True, "email": "me@example.com"}))

        assert job.status == JobStatus.COMPLETED
        assert orchestrator.store.get_job(job.id).status == JobStatus.COMPLETED

    def test_no_destination_no_notification(self, make_orchestrator):
        notifier = RecordingNotifier()
        orchestrator = make_orchestrator({SEED: page("Home", "<p>Hi</p>")}, notifier=notifier)
        orchestrator.run(orchestrator.submit(SEED, {"singlePageOnly": True}))
        assert notifier.sent == []


class TestExecution:

    def test_run_twice_rejected(self, make_orchestrator):
        orchestrator = make_orchestrator({SEED: page("Home", "<p>Hi</p>")})
        job_id = orchestrator.submit(SEED, {"singlePageOnly": True})
        orchestrator.run(job_id)
        with pytest.raises(JobStateError):
            orchestrator.run(job_id)

    def test_unknown_job(self, make_orchestrator):
        with pytest.raises(KeyError):
            make_orchestrator({}).run("missing")

    def test_start_in_background(self, make_orchestrator):
        orchestrator = make_orchestrator({SEED: page("Home", "<p>Hi</p>")})
        with orchestrator:
            future = orchestrator.start(orchestrator.submit(SEED, {"singlePageOnly": True}))
            job = future.result(timeout=30)
        assert job.status == JobStatus.COMPLETED
