"""Target credentials and per-run collector settings."""

from __future__ import annotations

import dataclasses
import logging
import os
from pathlib import Path
from typing import Dict, Mapping, Optional

from dotenv import dotenv_values

from . import (
    CAPTURE_TIMEOUT,
    CONSOLE_PORT,
    DEFAULT_BSCONFIG,
    ECP_PORT,
    ENV_HOST_KEY,
    ENV_PASSWORD_KEY,
    MANIFEST_RELATIVE_PATH,
    REPORT_FILENAME,
    SETTINGS_FILENAME,
)
from .exceptions import ConfigurationError

logger = logging.getLogger("roku_coverage_tools.config")


@dataclasses.dataclass(frozen=True)
class TargetCredentials:
    """Developer-mode login for the target device.

    Attributes:
        host: IP address or hostname of the Roku device.
        password: Developer web-installer password.
    """
    host: str
    password: str

    def __repr__(self) -> str:
        return f"TargetCredentials(host={self.host!r}, password='***')"


@dataclasses.dataclass(frozen=True)
class CollectorSettings:
    """Everything a single coverage run needs to know about the project.

    Attributes:
        project_root: Directory holding ``bsconfig-tests.json`` and ``src/``.
        bsconfig: Build configuration passed to ``bsc --project``.
        manifest_path: Manifest toggled into unit-test mode.
        report_path: Where the captured lcov report is written.
        console_port: Debug console port on the device.
        ecp_port: External Control Protocol port on the device.
        capture_timeout: Seconds from console open until forced shutdown.
        manifest_hook: Toggle the manifest around the build only, instead of
            for the whole run.
    """
    project_root: Path
    bsconfig: str = DEFAULT_BSCONFIG
    manifest_path: Optional[Path] = None
    report_path: Optional[Path] = None
    console_port: int = CONSOLE_PORT
    ecp_port: int = ECP_PORT
    capture_timeout: float = CAPTURE_TIMEOUT
    manifest_hook: bool = False

    def __post_init__(self) -> None:
        root = Path(self.project_root)
        object.__setattr__(self, "project_root", root)
        if self.manifest_path is None:
            object.__setattr__(self, "manifest_path", root / MANIFEST_RELATIVE_PATH)
        if self.report_path is None:
            object.__setattr__(self, "report_path", root / REPORT_FILENAME)


def read_settings_file(path: Path) -> Dict[str, str]:
    """Read ``KEY=value`` pairs from a local settings file.

    Returns an empty mapping when the file does not exist.
    """
    if not path.is_file():
        logger.debug("[CONFIG] No settings file at %s", path)
        return {}
    values = {k: v for k, v in dotenv_values(path).items() if v is not None}
    logger.debug("[CONFIG] Loaded %d keys from %s", len(values), path)
    return values


def resolve_credentials(
    project_root: Path,
    environ: Optional[Mapping[str, str]] = None,
) -> TargetCredentials:
    """Resolve the device host and password.

    Each key is looked up in the environment first and falls back to the
    project's ``.env`` file.

    Raises:
        ConfigurationError: If either value is missing from both sources.
    """
    env = os.environ if environ is None else environ
    settings_path = Path(project_root) / SETTINGS_FILENAME
    file_values = read_settings_file(settings_path)

    def lookup(key: str) -> str:
        value = (env.get(key) or "").strip()
        if value:
            logger.debug("[CONFIG] %s taken from environment", key)
            return value
        return (file_values.get(key) or "").strip()

    host = lookup(ENV_HOST_KEY)
    password = lookup(ENV_PASSWORD_KEY)

    missing = [
        key for key, value in ((ENV_HOST_KEY, host), (ENV_PASSWORD_KEY, password))
        if not value
    ]
    if missing:
        msg = (
            f"[resolve credentials] {' and '.join(missing)} must be set in the "
            f"environment or in {settings_path}"
        )
        logger.error("[CONFIG] %s", msg)
        raise ConfigurationError(msg)

    logger.info("[CONFIG] Target device: %s", host)
    return TargetCredentials(host=host, password=password)
