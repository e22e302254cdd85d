"""Reversible manifest edit that switches a build into unit-test mode.

The Roku ``manifest`` carries a ``bs_const=`` line with the BrighterScript
compile-time constants.  Coverage builds need ``unittest=true`` in there, but
the developer's manifest must come back untouched afterwards.

``ManifestMutator`` snapshots the file as raw bytes before touching it and
writes those exact bytes back on ``restore()``, at most once.

``ManifestHook`` offers the same guarantee from inside the build tool's
lifecycle: mutate once the program is created, restore once the package has
been serialized.  A run uses one context or the other, never both.
"""

from __future__ import annotations

import dataclasses
import logging
import re
from pathlib import Path
from typing import Optional, Union

from typeguard import typechecked

from . import BS_CONST_KEY, UNITTEST_BS_CONST
from .exceptions import ConfigurationError, ManifestError
from .fileio import atomic_write_bytes

logger = logging.getLogger("roku_coverage_tools.manifest")

# Non-UTF-8 bytes survive the decode/encode round trip untouched.
_ENCODING = "utf-8"
_ERRORS = "surrogateescape"


def _key_pattern(key: str) -> re.Pattern:
    return re.compile(rf"^{re.escape(key)}=(.*)$", re.MULTILINE)


@dataclasses.dataclass
class ManifestSnapshot:
    """Original manifest bytes and whether the file currently differs."""
    path: Path
    original_content: Optional[bytes] = None
    is_modified: bool = False


@typechecked
class ManifestMutator:
    """Guarded, reversible edit of one manifest key."""

    def __init__(
        self,
        path: Union[str, Path],
        value: str = UNITTEST_BS_CONST,
        key: str = BS_CONST_KEY,
    ) -> None:
        """Initialize the mutator.  The file is not touched yet.

        Args:
            path: Manifest file to edit.
            value: Value written to *key* while instrumentation is on.
            key: Manifest key to replace (default: ``bs_const``).
        """
        self.key = key
        self.value = value
        self.snapshot = ManifestSnapshot(path=Path(path))

    @property
    def path(self) -> Path:
        return self.snapshot.path

    @property
    def is_modified(self) -> bool:
        return self.snapshot.is_modified

    def require_manifest(self) -> None:
        """Raise `.ConfigurationError` if the manifest does not exist."""
        if not self.path.is_file():
            msg = f"[manifest check] Manifest not found at {self.path}"
            logger.error("[MANIFEST] %s", msg)
            raise ConfigurationError(msg)

    def mutate(self) -> Optional[str]:
        """Snapshot the manifest and switch *key* to the instrumentation value.

        Every other line is preserved byte for byte.  Calling ``mutate()``
        while already modified does nothing, so the snapshot always holds the
        developer's original file.

        Returns:
            The key's previous value, or ``None`` if the key was absent.

        Raises:
            ConfigurationError: If the manifest does not exist.
            ManifestError: If reading or writing fails.
        """
        if self.snapshot.is_modified:
            logger.debug("[MANIFEST] %s is already modified — skipping", self.path)
            return None

        self.require_manifest()

        try:
            original = self.path.read_bytes()
        except OSError as exc:
            msg = f"[mutate manifest] Cannot read {self.path}: {exc}"
            logger.error("[MANIFEST] READ ERROR — %s", msg)
            raise ManifestError(msg) from exc

        text = original.decode(_ENCODING, _ERRORS)
        pattern = _key_pattern(self.key)
        match = pattern.search(text)
        previous = match.group(1) if match else None
        replacement = f"{self.key}={self.value}"
        modified = pattern.sub(lambda _m: replacement, text, count=1)

        if match is None:
            logger.warning(
                "[MANIFEST] No %s= line in %s — writing it back unchanged",
                self.key, self.path,
            )
        else:
            logger.info("[MANIFEST] Original %s: %s", self.key, previous)

        self.snapshot.original_content = original
        try:
            atomic_write_bytes(self.path, modified.encode(_ENCODING, _ERRORS))
        except OSError as exc:
            self.snapshot.original_content = None
            msg = f"[mutate manifest] Cannot write {self.path}: {exc}"
            logger.error("[MANIFEST] WRITE ERROR — %s", msg)
            raise ManifestError(msg) from exc

        self.snapshot.is_modified = True
        logger.info("[MANIFEST] Modified %s: %s", self.path, replacement)
        return previous

    def restore(self) -> bool:
        """Write the snapshot back verbatim.

        No-op unless the manifest was modified by this mutator.

        Returns:
            ``True`` if the file was written, ``False`` if there was nothing
            to restore.

        Raises:
            ManifestError: If writing fails.
        """
        if not self.snapshot.is_modified or self.snapshot.original_content is None:
            logger.debug("[MANIFEST] Nothing to restore for %s", self.path)
            return False

        try:
            atomic_write_bytes(self.path, self.snapshot.original_content)
        except OSError as exc:
            msg = f"[restore manifest] Cannot write {self.path}: {exc}"
            logger.error("[MANIFEST] RESTORE ERROR — %s", msg)
            raise ManifestError(msg) from exc

        self.snapshot.is_modified = False
        logger.info("[MANIFEST] Restored original %s", self.path)
        return True


@typechecked
class ManifestHook:
    """Build-tool lifecycle hook around a `ManifestMutator`.

    ``after_program_create`` runs before the build loads the manifest and
    ``after_serialize_program`` runs once the package is written, which is the
    last point the build reads project files.
    """

    name = "ManifestHook"

    def __init__(self, value: str = UNITTEST_BS_CONST) -> None:
        self.value = value
        self.mutator: Optional[ManifestMutator] = None

    @property
    def is_modified(self) -> bool:
        return self.mutator is not None and self.mutator.is_modified

    def after_program_create(self, root_dir: Union[str, Path]) -> bool:
        """Switch ``<root_dir>/manifest`` into unit-test mode.

        A missing manifest is logged and leaves nothing to restore.

        Returns:
            ``True`` if the manifest was modified.
        """
        manifest_path = Path(root_dir) / "manifest"
        if not manifest_path.is_file():
            logger.warning("[MANIFEST-HOOK] Manifest not found at %s", manifest_path)
            return False

        if self.mutator is None:
            self.mutator = ManifestMutator(manifest_path, value=self.value)
        self.mutator.mutate()
        return self.mutator.is_modified

    def after_serialize_program(self) -> bool:
        """Put the original manifest back once the package is built."""
        if self.mutator is None:
            return False
        return self.mutator.restore()

    def restore(self) -> bool:
        return self.after_serialize_program()
