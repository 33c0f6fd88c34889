"""Turn one extracted archive into a release document and its files."""

from __future__ import annotations

import codecs
import os
import stat as stat_module
from dataclasses import dataclass, field
from datetime import UTC, datetime
from functools import cached_property
from pathlib import Path, PurePosixPath
from typing import List, Optional, Sequence

from .archive import ArchiveGateway, Classification, ExtractedArchive
from .config import IndexerConfig
from .discovery import ModuleDiscoverer
from .distinfo import DistInfo
from .document import File, PathContent
from .errors import IndexerError
from .logging import get_logger
from .metadata import DistMeta, MetadataLoader
from .models import Dependency, Module, Release, Stat
from .permissions import Permissions
from .pod import ExternalPodRenderer, PodRenderer, PodTextRenderer, strip_pod
from .policy import set_authorized, set_indexed
from .stores import BulkWriter
from .version import fix_version, normalize_version, numify_version

CHANGES_FILES = ("Changelog", "ChangeLog", "CHANGELOG", "Changes", "CHANGES", "NEWS")
_TEXT_CHARACTERS = bytes(range(32, 127)) + b"\b\t\n\f\r\x1b"
_BINARY_SAMPLE = 512


@dataclass
class BuiltRelease:
    """Everything derived from one archive."""

    release: Release
    files: List[File] = field(default_factory=list)
    modules: List[File] = field(default_factory=list)
    unauthorized: List[Module] = field(default_factory=list)


class ReleaseBuilder:
    """Runs the per-archive stages in order.

    classify, extract, metadata, files, modules, policy, main module. Each
    stage only reads the complete output of the stages before it.
    """

    def __init__(
        self,
        archive: Path,
        *,
        config: IndexerConfig,
        gateway: ArchiveGateway,
        permissions: Optional[Permissions] = None,
        discoverer: Optional[ModuleDiscoverer] = None,
        renderer: Optional[PodRenderer] = None,
        loader: Optional[MetadataLoader] = None,
    ) -> None:
        self.archive = archive
        self.config = config
        self.gateway = gateway
        self.permissions = permissions or Permissions()
        self.discoverer = discoverer or ModuleDiscoverer(
            perl6=config.perl6, scan_timeout=config.scan_timeout
        )
        if renderer is None and config.perl6:
            renderer = ExternalPodRenderer(executable=config.renderer)
        self.renderer = renderer or PodTextRenderer()
        self.loader = loader or MetadataLoader(
            perl6=config.perl6, no_index_dirs=config.no_index_dirs
        )
        self.logger = get_logger("release")

    # ------------------------------------------------------------------
    # Facts from the archive path

    @cached_property
    def distinfo(self) -> DistInfo:
        return DistInfo.from_path(self.archive.as_posix())

    @property
    def author(self) -> str:
        if not self.distinfo.cpanid:
            raise IndexerError(f"Cannot determine the author of {self.archive}")
        return self.distinfo.cpanid

    @property
    def name(self) -> str:
        return self.distinfo.distvname

    @property
    def distribution(self) -> str:
        return self.distinfo.dist

    @property
    def maturity(self) -> str:
        return self.distinfo.maturity

    @cached_property
    def version(self) -> str:
        if self.config.perl6:
            return normalize_version(self.distinfo.version).display
        return fix_version(self.distinfo.version)

    @cached_property
    def archive_stat(self) -> Stat:
        return Stat.from_os(self.archive.stat())

    @cached_property
    def date(self) -> str:
        moment = datetime.fromtimestamp(self.archive_stat.mtime, UTC)
        return moment.isoformat().replace("+00:00", "Z")

    @cached_property
    def classification(self) -> Classification:
        classification = self.gateway.classify(self.archive)
        if classification is Classification.IMPOLITE:
            self.logger.error("%s is being impolite", self.archive.name)
        elif classification is Classification.NAUGHTY:
            self.logger.error("%s is being naughty", self.archive.name)
        return classification

    # ------------------------------------------------------------------
    # Stages

    def extract(self, directory: Path) -> ExtractedArchive:
        self.logger.debug("Extracting %s to %s", self.archive.name, directory)
        return self.gateway.extract(self.archive, directory)

    def metadata(self, directory: Path) -> DistMeta:
        return self.loader.load(directory, distribution=self.distribution, version=self.version)

    def files(
        self, directory: Path, meta: DistMeta, bulk: Optional[BulkWriter] = None
    ) -> List[File]:
        """Walk ``directory`` and build one :class:`File` per entry.

        Every file is handed to ``bulk`` as it is produced and the batch is
        committed once the walk is complete.
        """
        impolite = self.classification is Classification.IMPOLITE
        files: List[File] = []
        for path in _walk(directory):
            if _is_broken_file(path):
                self.logger.debug("Skipping broken entry %s", path)
                continue
            relative = path.relative_to(directory).as_posix()
            is_dir = path.is_dir()
            if impolite:
                file_path = relative
            elif "/" in relative:
                file_path = relative.split("/", 1)[1]
            else:
                file_path = ""
            file = File(
                path=file_path,
                name=PurePosixPath(relative).name,
                author=self.author,
                release=self.name,
                distribution=self.distribution,
                stat=Stat.from_os(path.stat()),
                content=PathContent(path),
                binary=False if is_dir else _is_binary(path),
                directory=is_dir,
                date=self.date,
                maturity=self.maturity,
                version=self.version,
                metadata=meta,
                local_path=path,
                perl6=self.config.perl6,
                renderer=self.renderer,
            )
            if bulk is not None:
                bulk.put(file.to_dict())
            files.append(file)
        if bulk is not None:
            bulk.commit()
        self.logger.debug("Indexed %d files from %s", len(files), self.archive.name)
        return files

    def dependencies(self, meta: DistMeta) -> List[Dependency]:
        dependencies: List[Dependency] = []
        for phase in sorted(meta.prereqs):
            for relationship in sorted(meta.prereqs[phase]):
                modules = meta.prereqs[phase][relationship]
                for module in sorted(modules):
                    dependencies.append(
                        Dependency(
                            phase=phase,
                            relationship=relationship,
                            module=module,
                            version=modules[module],
                        )
                    )
        self.logger.debug("Found %d dependencies", len(dependencies))
        return dependencies

    def document(self, meta: DistMeta) -> Release:
        abstract = strip_pod(meta.abstract) if meta.abstract else None
        if abstract in ("unknown", "null"):
            abstract = None
        return Release(
            name=self.name,
            archive=self.distinfo.filename.rsplit("/", 1)[-1],
            author=self.author,
            distribution=self.distribution,
            version=self.version,
            version_numified=numify_version(self.version),
            maturity=self.maturity,
            date=self.date,
            stat=self.archive_stat,
            metadata=meta.as_struct(),
            dependency=self.dependencies(meta),
            license=list(meta.licenses),
            resources=dict(meta.resources),
            abstract=abstract,
        )

    def apply_policy(self, files: Sequence[File], meta: DistMeta) -> List[Module]:
        """Set indexed/authorized flags; return indexed but unauthorized modules."""
        unauthorized: List[Module] = []
        for file in files:
            if file.directory:
                continue
            set_indexed(file, meta)
            unauthorized.extend(set_authorized(file, self.permissions, self.author))
        return unauthorized

    def build(self, directory: Path, bulk: Optional[BulkWriter] = None) -> BuiltRelease:
        """Run every stage against an empty ``directory``."""
        self.logger.info("Processing %s", self.archive)
        self.extract(directory)
        meta = self.metadata(directory)
        release = self.document(meta)
        files = self.files(directory, meta, bulk)
        modules = self.discoverer.discover(files, meta)
        unauthorized = self.apply_policy(files, meta)
        if unauthorized:
            release.authorized = False
            self.logger.info(
                "%s claims %d unauthorized modules", release.id, len(unauthorized)
            )
        release.provides = sorted(
            {module.name for file in modules for module in file.modules if module.is_indexed}
        )
        release.main_module = select_main_module(modules, self.distribution)
        release.changes_file = find_changes_file(files, self.distribution)
        return BuiltRelease(release=release, files=files, modules=modules, unauthorized=unauthorized)


def select_main_module(files: Sequence[File], distribution: str) -> Optional[str]:
    """Pick the module that best represents the release."""
    candidates = [file for file in files if file.modules]
    if not candidates:
        return None
    if len(candidates) == 1:
        return candidates[0].modules[0].name

    dist_module = distribution.replace("-", "::")
    for file in candidates:
        if file.modules[0].name == dist_module:
            return dist_module

    ranked = sorted(candidates, key=lambda file: (file.level, len(file.modules[0].name)))
    return ranked[0].modules[0].name


def find_changes_file(files: Sequence[File], distribution: str) -> Optional[str]:
    if distribution == "perl":
        for file in files:
            if file.name == "perldelta.pod":
                return file.path
    for file in files:
        if file.path in CHANGES_FILES:
            return file.path
    return None


# ----------------------------------------------------------------------
# Internal helpers


def _walk(directory: Path) -> List[Path]:
    entries: List[Path] = []
    for root, dirs, names in os.walk(directory):
        dirs.sort()
        base = Path(root)
        entries.extend(base / name for name in dirs)
        entries.extend(base / name for name in names)
    return sorted(entries, key=lambda path: path.relative_to(directory).as_posix())


def _is_broken_file(path: Path) -> bool:
    try:
        mode = path.lstat().st_mode
    except OSError:
        return True
    if stat_module.S_ISLNK(mode):
        return not path.exists()
    return not (stat_module.S_ISREG(mode) or stat_module.S_ISDIR(mode))


def _is_binary(path: Path) -> bool:
    """perl's ``-B``: a NUL byte, or over 30% non-text bytes in the first block."""
    try:
        with path.open("rb") as handle:
            sample = handle.read(_BINARY_SAMPLE)
    except OSError:
        return False
    if not sample:
        return False
    if b"\0" in sample:
        return True
    try:
        codecs.getincrementaldecoder("utf-8")().decode(sample, final=False)
    except UnicodeDecodeError:
        pass
    else:
        return False
    non_text = sample.translate(None, _TEXT_CHARACTERS)
    return len(non_text) / len(sample) > 0.3


__all__ = [
    "BuiltRelease",
    "CHANGES_FILES",
    "ReleaseBuilder",
    "find_changes_file",
    "select_main_module",
]
