"""Configuration loading helpers for CLI entrypoints."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Callable, Dict, Mapping, Optional

from .config import DEFAULT_OUTPUT_ROOT

ENV_OUTPUT_ROOT = "HARVESTER_OUTPUT_ROOT"
ENV_USER_AGENT = "HARVESTER_USER_AGENT"
ENV_FETCHER = "HARVESTER_FETCHER"


def load_config(
    *,
    config_dir: Path,
    config_env_file: Path,
    cwd: Path,
    load_env: Callable[[Path], bool],
    copy_file: Callable[[Path, Path], str],
) -> Optional[Path]:
    """Load .env configuration with fallback to user config directory.

    Returns the file that was loaded, if any.
    """
    local_env = cwd / ".env"
    if local_env.is_file():
        load_env(local_env)
        return local_env

    if config_env_file.is_file():
        load_env(config_env_file)
        return config_env_file

    package_dir = Path(__file__).parent.parent
    example_file = package_dir / ".env.example"

    if example_file.is_file():
        try:
            config_dir.mkdir(parents=True, exist_ok=True)
            copy_file(example_file, config_env_file)
            logging.info(
                "Created config file at %s from .env.example. "
                "Edit it to change the default output root or fetcher.",
                config_env_file,
            )
            load_env(config_env_file)
            return config_env_file
        except OSError as exc:
            logging.debug("Could not create %s: %s", config_env_file, exc)
    return None


def env_defaults(environ: Optional[Mapping[str, str]] = None) -> Dict[str, Optional[str]]:
    """Harvest defaults taken from the environment."""
    env = os.environ if environ is None else environ
    fetcher = (env.get(ENV_FETCHER) or "browser").strip().lower()
    return {
        "output_root": env.get(ENV_OUTPUT_ROOT) or DEFAULT_OUTPUT_ROOT,
        "user_agent": env.get(ENV_USER_AGENT) or None,
        "fetcher": fetcher,
    }
