"""Shared utilities for verification probes."""

from __future__ import annotations

import logging
import os
import re
import sys
import uuid
from datetime import datetime
from pathlib import Path
from typing import List

from dotenv import load_dotenv

DEFAULT_PROBE_ENV_FILENAMES = (
    ".env.probes",
    ".env.probes.local",
)

TRUTHY_VALUES = {"1", "true", "yes", "on"}


def probe_env_files() -> List[Path]:
    """Dotenv files layered over `.env`, in load order.

    `PROBE_ENV_FILE` replaces the defaults with its own path list. Relative
    entries are taken from the working directory.
    """
    raw = os.getenv("PROBE_ENV_FILE", "")
    names = [entry.strip() for entry in raw.split(os.pathsep) if entry.strip()] or list(DEFAULT_PROBE_ENV_FILENAMES)
    return [Path.cwd() / Path(name).expanduser() for name in names]


def load_probe_env() -> List[Path]:
    """Load `.env` without overriding the process, then each probe env file over it.

    Returns the files that were actually read.
    """
    loaded: List[Path] = []
    base = Path.cwd() / ".env"
    if load_dotenv(base, override=False):
        loaded.append(base)

    for env_path in probe_env_files():
        if env_path.is_file() and load_dotenv(env_path, override=True):
            loaded.append(env_path)
    return loaded


def env_flag(name: str, default: bool = False) -> bool:
    """Interpret an environment variable as a boolean switch."""

    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in TRUTHY_VALUES


def make_run_id() -> str:
    """Generate an 8-character run identifier."""

    return str(uuid.uuid4())[:8]


def slugify(name: str) -> str:
    """Lowercase a label and collapse anything non-alphanumeric into single dashes."""

    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return slug or "unnamed"


def run_output_dir(output_root: Path, probe_name: str, run_id: str, started: datetime | None = None) -> Path:
    """Return (and create) the per-run directory for screenshots, logs and reports."""

    stamp = (started or datetime.now()).strftime("%Y%m%d-%H%M%S")
    run_dir = output_root / f"{slugify(probe_name)}-{stamp}-{run_id}"
    run_dir.mkdir(parents=True, exist_ok=True)
    return run_dir


LOG_FILE_NAME = "execution.log"
FILE_LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"
FILE_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logger(run_id: str, run_dir: Path, console_level: int = logging.INFO) -> logging.Logger:
    """Return the run logger: everything into `execution.log`, `console_level` and up to stdout.

    The logger does not propagate, so probe output is not duplicated by a
    root handler configured elsewhere. Pair with :func:`close_logger`.
    """
    run_dir.mkdir(parents=True, exist_ok=True)
    log_file = run_dir / LOG_FILE_NAME

    logger = logging.getLogger(f"probe_{run_id}")
    close_logger(logger)
    logger.setLevel(logging.DEBUG)
    logger.propagate = False

    file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(FILE_LOG_FORMAT, datefmt=FILE_DATE_FORMAT))
    logger.addHandler(file_handler)

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setLevel(console_level)
    stdout_handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(stdout_handler)

    logger.debug(f"Run {run_id} logging to {log_file}")
    return logger


def close_logger(logger: logging.Logger) -> None:
    """Detach and close every handler on a run logger."""
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


__all__ = [
    "DEFAULT_PROBE_ENV_FILENAMES",
    "close_logger",
    "env_flag",
    "load_probe_env",
    "make_run_id",
    "probe_env_files",
    "run_output_dir",
    "setup_logger",
    "slugify",
]
