"""
Scrapegoat
Crawls a website and converts every page into a Word document, delivered
as one ZIP archive per job.

CLI Usage:
    python -m scrapegoat <url> [options]

    Options:
        --follow-all-domains  Follow links to other hosts
        --include-images      Download images and reference them in documents
        --single-page         Convert only the given URL
        --selector            CSS selector of the main content element
        --max-urls            Maximum pages to visit (default: 1000)
        --max-time            Crawl time limit in seconds (default: 1800)
        --delay               Delay between crawl requests (default: 0.5)
        --js                  Render pages with a headless browser
        --workers             Parallel document workers (default: 1)
        --storage             Job storage directory
        --db                  SQLite database path
"""

from .archive import pack
from .crawler import Crawler, CrawlConfig, CrawlFrontier, CrawlResult
from .document import Block, BlockType, InlineRun, StructuredDocument
from .errors import ArchiveError, FetchError, JobStateError, NoPagesError, ScrapegoatError
from .extractor import extract_content
from .fetcher import Fetcher, FetchConfig, FetchResult
from .heuristics import ColumnPolicy, EmphasisPolicy, is_emphasized_heading
from .models import Job, JobOptions, JobStatus, Page
from .notifier import LogNotifier, Notifier
from .orchestrator import JobOrchestrator
from .run_config import JobRunConfig
from .store import JobStore, MemoryJobStore, SQLiteJobStore
from .synthesizer import DocumentSynthesizer, LayoutPolicy, SynthesisPolicy, optimize_layout, synthesize
from .utils import URLNormalizer, slugify, url_to_slug
from .word_exporter import DocumentSerializer

__all__ = [
    'Crawler',
    'CrawlConfig',
    'CrawlFrontier',
    'CrawlResult',
    'Fetcher',
    'FetchConfig',
    'FetchResult',
    'extract_content',
    # Documents
    'Block',
    'BlockType',
    'InlineRun',
    'StructuredDocument',
    'DocumentSynthesizer',
    'SynthesisPolicy',
    'LayoutPolicy',
    'EmphasisPolicy',
    'ColumnPolicy',
    'is_emphasized_heading',
    'optimize_layout',
    'synthesize',
    'DocumentSerializer',
    'pack',
    # Jobs
    'Job',
    'JobOptions',
    'JobStatus',
    'Page',
    'JobOrchestrator',
    'JobRunConfig',
    'JobStore',
    'MemoryJobStore',
    'SQLiteJobStore',
    'Notifier',
    'LogNotifier',
    # Errors
    'ScrapegoatError',
    'FetchError',
    'JobStateError',
    'NoPagesError',
    'ArchiveError',
    'URLNormalizer',
    'slugify',
    'url_to_slug',
]

__version__ = '1.0.0'
