"""Per-run state shared by the collector components."""

from __future__ import annotations

import dataclasses
from typing import Optional, Union

from .config import CollectorSettings, TargetCredentials
from .console import ConsoleStreamReader
from .extraction import CoverageExtractor
from .manifest import ManifestHook, ManifestMutator
from .writer import CoverageWriter


@dataclasses.dataclass
class CollectionSession:
    """Everything one coverage run owns.

    ``manifest`` is either the run-wide `ManifestMutator` or the `ManifestHook`
    used inside the build; both expose ``is_modified`` and ``restore()``.
    ``stream`` is set once the console connection is attempted.
    """
    settings: CollectorSettings
    credentials: TargetCredentials
    manifest: Union[ManifestMutator, ManifestHook]
    extractor: CoverageExtractor
    writer: CoverageWriter
    stream: Optional[ConsoleStreamReader] = None

    @classmethod
    def create(
        cls,
        settings: CollectorSettings,
        credentials: TargetCredentials,
    ) -> CollectionSession:
        manifest: Union[ManifestMutator, ManifestHook]
        if settings.manifest_hook:
            manifest = ManifestHook()
        else:
            manifest = ManifestMutator(settings.manifest_path)
        return cls(
            settings=settings,
            credentials=credentials,
            manifest=manifest,
            extractor=CoverageExtractor(),
            writer=CoverageWriter(settings.report_path),
        )
