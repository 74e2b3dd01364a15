"""
Archive Packager
Packs a job's generated documents (and images) into one ZIP file.
"""

import logging
import os
import tempfile
import zipfile
from pathlib import Path
from typing import List, Optional, Tuple

from .errors import ArchiveError

logger = logging.getLogger(__name__)

COMPRESS_LEVEL = 9


def _archive_entries(root: Path) -> List[Tuple[Path, str]]:
    """(file path, archive name) for every regular file under *root*, sorted."""
    entries = []

    def _raise(err: OSError):
        raise err

    for dirpath, _, filenames in os.walk(root, onerror=_raise):
        for filename in filenames:
            path = Path(dirpath) / filename
            if not path.is_file():
                continue
            entries.append((path, path.relative_to(root).as_posix()))
    entries.sort(key=lambda entry: entry[1])
    return entries


def pack(job_output_root, archive_path: Optional[Path] = None) -> Path:
    """
    Zip every file under *job_output_root*, paths relative to it.

    Args:
        job_output_root: Directory holding the job's documents
        archive_path: Destination; defaults to ``output.zip`` next to the root

    Returns:
        Path of the finished archive

    Raises:
        ArchiveError: if the root cannot be walked or the archive written.
            No file is left at the destination in that case.
    """
    root = Path(job_output_root)
    if not root.is_dir():
        raise ArchiveError(f"Output directory does not exist: {root}")

    archive_path = Path(archive_path) if archive_path else root.parent / "output.zip"
    try:
        archive_path.relative_to(root)
    except ValueError:
        pass
    else:
        raise ArchiveError(f"Archive {archive_path} must not be inside {root}")

    tmp_name = None
    try:
        entries = _archive_entries(root)
        archive_path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=".output-", suffix=".zip.part", dir=str(archive_path.parent)
        )
        os.close(fd)

        with zipfile.ZipFile(
            tmp_name, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=COMPRESS_LEVEL
        ) as zf:
            for path, arcname in entries:
                zf.write(path, arcname)

        os.replace(tmp_name, archive_path)
        tmp_name = None
    except (OSError, zipfile.BadZipFile) as e:
        raise ArchiveError(f"Failed to create archive from {root}: {e}") from e
    finally:
        if tmp_name and os.path.exists(tmp_name):
            os.remove(tmp_name)

    logger.info(f"[ZIP] Packed {len(entries)} files → {archive_path}")
    return archive_path
