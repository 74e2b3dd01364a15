"""
Unified Run Configuration
=========================
Single source of truth for every crawl and conversion default.

The CLI, the environment (``SCRAPEGOAT_*`` variables, optionally from a
``.env`` file) and library callers all populate a ``JobRunConfig``;
component-level config objects are built *from* it via converters.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Canonical defaults, the only place these numbers live
# ---------------------------------------------------------------------------
_DEFAULTS = {
    "max_urls": 1000,
    "max_crawl_time": 30 * 60.0,     # seconds
    "request_delay": 0.5,            # seconds between crawl fetches
    "fetch_timeout": 10.0,           # static fetch, seconds
    "render_timeout": 30.0,          # dynamic render, seconds
    "settle_delay": 2.0,             # wait after render for late content
    "enable_js": False,              # render pages with Playwright for documents
    "generation_workers": 1,
    "job_workers": 2,
    "storage_dir": "./storage/jobs",
    "db_path": None,                 # None = in-memory store
    "public_base_url": "http://localhost:3000",
    "user_agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
        "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36"
    ),
}

_ENV_PREFIX = "SCRAPEGOAT_"


def _env_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class JobRunConfig:
    """
    Unified configuration consumed by every pipeline stage.

    Populate via:
      - ``JobRunConfig()``                  → all defaults
      - ``JobRunConfig(max_urls=50)``       → override one value
      - ``JobRunConfig.from_env()``         → from SCRAPEGOAT_* variables
      - ``JobRunConfig.from_cli_args(ns)``  → from argparse Namespace
    """

    # ---- Crawl limits ----
    max_urls: int = _DEFAULTS["max_urls"]
    max_crawl_time: float = _DEFAULTS["max_crawl_time"]
    request_delay: float = _DEFAULTS["request_delay"]

    # ---- Fetching ----
    fetch_timeout: float = _DEFAULTS["fetch_timeout"]
    render_timeout: float = _DEFAULTS["render_timeout"]
    settle_delay: float = _DEFAULTS["settle_delay"]
    enable_js: bool = _DEFAULTS["enable_js"]
    user_agent: str = _DEFAULTS["user_agent"]

    # ---- Workers ----
    generation_workers: int = _DEFAULTS["generation_workers"]
    job_workers: int = _DEFAULTS["job_workers"]

    # ---- Storage ----
    storage_dir: str = _DEFAULTS["storage_dir"]
    db_path: Optional[str] = _DEFAULTS["db_path"]
    public_base_url: str = _DEFAULTS["public_base_url"]

    # -----------------------------------------------------------------------
    # Factory helpers
    # -----------------------------------------------------------------------
    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "JobRunConfig":
        """Build config from ``SCRAPEGOAT_*`` environment variables."""
        if env_file:
            load_dotenv(env_file)
        else:
            load_dotenv()

        cfg = cls()
        for name, default in _DEFAULTS.items():
            raw = os.environ.get(_ENV_PREFIX + name.upper())
            if raw is None or raw == "":
                continue
            if isinstance(default, bool):
                value = _env_bool(raw)
            elif isinstance(default, int):
                value = int(raw)
            elif isinstance(default, float):
                value = float(raw)
            else:
                value = raw
            setattr(cfg, name, value)
        return cfg

    @classmethod
    def from_cli_args(cls, args, base: Optional["JobRunConfig"] = None) -> "JobRunConfig":
        """Overlay an argparse Namespace (``__main__.py``) on *base*."""
        cfg = base or cls()
        overrides = {
            "max_urls": getattr(args, "max_urls", None),
            "max_crawl_time": getattr(args, "max_time", None),
            "request_delay": getattr(args, "delay", None),
            "generation_workers": getattr(args, "workers", None),
            "storage_dir": getattr(args, "storage", None),
            "db_path": getattr(args, "db", None),
        }
        for name, value in overrides.items():
            if value is not None:
                setattr(cfg, name, value)
        if getattr(args, "js", False):
            cfg.enable_js = True
        return cfg

    # -----------------------------------------------------------------------
    # Converters to component config objects
    # -----------------------------------------------------------------------
    def to_crawl_config(self):
        """Return a ``CrawlConfig`` populated from this run config."""
        from .crawler import CrawlConfig
        return CrawlConfig(
            max_urls=self.max_urls,
            max_crawl_time=self.max_crawl_time,
            request_delay=self.request_delay,
            fetch_timeout=self.fetch_timeout,
        )

    def to_fetch_config(self):
        """Return a ``FetchConfig`` populated from this run config."""
        from .fetcher import FetchConfig
        return FetchConfig(
            timeout=self.fetch_timeout,
            render_timeout=self.render_timeout,
            settle_delay=self.settle_delay,
            user_agent=self.user_agent,
        )

    def job_dir(self, job_id: str) -> Path:
        """Root folder holding one job's documents and archive."""
        return Path(self.storage_dir) / job_id

    # -----------------------------------------------------------------------
    # Logging helper
    # -----------------------------------------------------------------------
    def log_summary(self, url: str) -> None:
        """Emit a structured summary to the logger."""
        logger.info("=" * 60)
        logger.info("JOB RUN CONFIG")
        logger.info("=" * 60)
        logger.info(f"  URL:              {url}")
        logger.info(f"  Max URLs:         {self.max_urls}")
        logger.info(f"  Max Crawl Time:   {self.max_crawl_time:.0f}s")
        logger.info(f"  Request Delay:    {self.request_delay}s")
        logger.info(f"  Fetch Timeout:    {self.fetch_timeout}s")
        logger.info(f"  JS Rendering:     {self.enable_js}")
        if self.enable_js:
            logger.info(f"  Render Timeout:   {self.render_timeout}s (+{self.settle_delay}s settle)")
        logger.info(f"  Doc Workers:      {self.generation_workers}")
        logger.info(f"  Storage:          {self.storage_dir}")
        logger.info(f"  Store:            {self.db_path or 'in-memory'}")
        logger.info("=" * 60)
