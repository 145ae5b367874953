# mediapreview/infra/scratch.py
"""Per-run scratch directories, removed when the run ends however it ends."""
from __future__ import annotations

import asyncio
import shutil
import tempfile
import uuid
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

from mediapreview.infra.logging_config import get_logger

logger = get_logger(__name__)

SCRATCH_PREFIX = "mediapreview-"


@asynccontextmanager
async def scratch_directory(
    root: str | Path | None = None,
    run_id: str | None = None,
) -> AsyncIterator[Path]:
    """
    Create a scratch directory for one run and remove it afterwards.

    Args:
        root: Parent directory (system temp dir if None)
        run_id: Directory name; must be unique per run (e.g. a request id).
            A random name is generated when omitted.

    Raises:
        FileExistsError: ``run_id`` names an existing directory
    """
    parent = Path(root) if root else Path(tempfile.gettempdir())
    path = parent / (run_id or f"{SCRATCH_PREFIX}{uuid.uuid4().hex}")

    # Exclusive: two runs must never share a directory
    path.mkdir(parents=False, exist_ok=False)
    logger.debug(f"Scratch directory created: {path}")

    try:
        yield path
    finally:
        await asyncio.to_thread(shutil.rmtree, path, ignore_errors=True)
        logger.debug(f"Scratch directory removed: {path}")
