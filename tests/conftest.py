"""Pytest configuration — path setup, logging and a sample project on disk."""

import logging
import os
import sys

import pytest

# ---------------------------------------------------------------------------
# Path setup: ensure the package and the test servers are importable
# regardless of installation
# ---------------------------------------------------------------------------
_TESTS_DIR = os.path.dirname(os.path.abspath(__file__))
_SRC_DIR = os.path.normpath(os.path.join(_TESTS_DIR, os.pardir, "src"))
for _path in (_SRC_DIR, _TESTS_DIR):
    if _path not in sys.path:
        sys.path.insert(0, _path)

# ---------------------------------------------------------------------------
# Logging: route all library log output to the console so pytest -s shows it
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.DEBUG,
    format="%(asctime)s | %(levelname)-7s | %(name)s | %(message)s",
    datefmt="%H:%M:%S",
)
# Quiet down aiohttp's and asyncio's own debug logs
logging.getLogger("aiohttp").setLevel(logging.WARNING)
logging.getLogger("asyncio").setLevel(logging.WARNING)


SAMPLE_MANIFEST = (
    "title=Rotor Tests\n"
    "major_version=0\n"
    "minor_version=2\n"
    "build_version=5\n"
    "bs_const=debug=false;unittest=false\n"
    "ui_resolutions=fhd\n"
)


@pytest.fixture()
def project_dir(tmp_path):
    """A channel project with ``src/manifest`` and no report yet."""
    src = tmp_path / "src"
    src.mkdir()
    (src / "manifest").write_bytes(SAMPLE_MANIFEST.encode("utf-8"))
    return tmp_path
