#!/usr/bin/env python3
"""
Command-line entry point
========================
Crawls a site (or one page), converts every page to a Word document and
packs the documents into a ZIP archive.

Configuration flows through ``JobRunConfig``: defaults, then ``SCRAPEGOAT_*``
environment variables (``.env`` supported), then command-line flags.

Run with: python -m scrapegoat <url>
"""

import argparse
import logging
import sys
import time
from pathlib import Path

from dotenv import load_dotenv

# Load .env (storage paths, limits) before building the config
env_path = Path(__file__).resolve().parent.parent / '.env'
if env_path.exists():
    load_dotenv(env_path)
else:
    load_dotenv()

from .models import Job, JobOptions, JobStatus
from .orchestrator import JobOrchestrator
from .run_config import JobRunConfig
from .store import MemoryJobStore, SQLiteJobStore

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s | %(levelname)s | %(message)s',
    datefmt='%H:%M:%S'
)
logger = logging.getLogger(__name__)


def print_summary(job: Job, elapsed: float):
    """Print job summary."""
    print("\n" + "=" * 65)
    print("JOB COMPLETE" if job.status == JobStatus.COMPLETED else "JOB FAILED")
    print("=" * 65)
    print(f"  Job ID:              {job.id}")
    print(f"  URL:                 {job.url}")
    print(f"  Status:              {job.status.value}")
    print(f"  Progress:            {job.progress}%")
    print(f"  Pages found:         {job.total_pages}")
    print(f"  Documents generated: {job.processed_pages}")
    print(f"  Total time:          {elapsed:.1f}s")
    if job.archive_path:
        print(f"  Archive:             {job.archive_path}")
    if job.error:
        print(f"  Error:               {job.error}")
    print("=" * 65)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='scrapegoat',
        description='Crawl a website and convert its pages into Word documents',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m scrapegoat https://example.com                  # Crawl the site
  python -m scrapegoat https://example.com/about --single-page
  python -m scrapegoat https://example.com --max-urls 50 --selector "main"
        """
    )
    parser.add_argument('url', help='Seed URL')
    parser.add_argument('--follow-all-domains', action='store_true',
                        help='Follow links to other hosts')
    parser.add_argument('--include-images', action='store_true',
                        help='Download images and reference them in documents')
    parser.add_argument('--single-page', action='store_true',
                        help='Convert only the given URL, no crawling')
    parser.add_argument('--selector', type=str, help='CSS selector of the main content element')
    parser.add_argument('--max-urls', type=int, help='Maximum pages to visit (default: 1000)')
    parser.add_argument('--max-time', type=float, help='Crawl time limit in seconds (default: 1800)')
    parser.add_argument('--delay', type=float, help='Delay between crawl requests in seconds (default: 0.5)')
    parser.add_argument('--js', action='store_true',
                        help='Render pages with a headless browser before conversion')
    parser.add_argument('--workers', type=int, help='Parallel document workers (default: 1)')
    parser.add_argument('--storage', type=str, help='Job storage directory (default: ./storage/jobs)')
    parser.add_argument('--db', type=str, help='SQLite database path (default: in-memory)')
    return parser


def run_cli_with_args(argv=None) -> int:
    """Parse argv, build JobRunConfig, run one job. Returns the exit code."""
    args = build_parser().parse_args(argv)

    url = args.url.strip()
    if not url.startswith(('http://', 'https://')):
        url = 'https://' + url

    cfg = JobRunConfig.from_cli_args(args, base=JobRunConfig.from_env())
    cfg.log_summary(url)

    store = SQLiteJobStore(cfg.db_path) if cfg.db_path else MemoryJobStore()
    options = JobOptions(
        follow_all_domains=args.follow_all_domains,
        include_images=args.include_images,
        single_page_only=args.single_page,
        content_selector=args.selector,
    )

    start = time.time()
    with JobOrchestrator(store, cfg) as orchestrator:
        try:
            job_id = orchestrator.submit(url, options)
        except ValueError as e:
            print(f"Error: {e}")
            return 1
        job = orchestrator.run(job_id)

    print_summary(job, time.time() - start)
    if isinstance(store, SQLiteJobStore):
        store.close()
    return 0 if job.status == JobStatus.COMPLETED else 1


def main():
    sys.exit(run_cli_with_args())


if __name__ == '__main__':
    main()
