"""Run loop: index a batch of archives, then settle release statuses."""

from __future__ import annotations

import tempfile
import threading
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Set

from .archive import ArchiveGateway, Classification, TarZipArchive
from .config import IndexerConfig
from .discovery import ModuleDiscoverer
from .distinfo import author_dir
from .errors import IndexerError
from .logging import get_logger
from .models import Release
from .packages import Packages
from .permissions import Permissions
from .pod import PodRenderer
from .policy import resolve_statuses
from .release import BuiltRelease, ReleaseBuilder
from .stores import And, DocumentExistsError, DocumentStore, Term


@dataclass
class RunSummary:
    """Archives handled by :meth:`IndexRun.index`, grouped by outcome."""

    indexed: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed


class IndexRun:
    """Indexes archives into a :class:`DocumentStore`.

    Every archive is processed in its own temporary directory and failures
    are contained to that archive. Once the batch is done, the status of
    each touched distribution's releases is recomputed.
    """

    def __init__(
        self,
        config: IndexerConfig,
        store: DocumentStore,
        *,
        permissions: Optional[Permissions] = None,
        gateway: Optional[ArchiveGateway] = None,
        packages: Optional[Packages] = None,
        discoverer: Optional[ModuleDiscoverer] = None,
        renderer: Optional[PodRenderer] = None,
        bulk_size: int = 500,
    ) -> None:
        self.config = config
        self.store = store
        self.permissions = permissions or Permissions()
        self.gateway = gateway or TarZipArchive(max_size=config.max_archive_size)
        self.packages = packages
        self.discoverer = discoverer
        self.renderer = renderer
        self.bulk_size = bulk_size
        self.logger = get_logger("orchestrator")
        self._lock = threading.Lock()

    def index(self, archives: Iterable[Path]) -> RunSummary:
        summary = RunSummary()
        touched: Set[str] = set()
        archives = list(archives)

        def handle(archive: Path) -> None:
            try:
                release = self.index_archive(archive)
            except IndexerError as exc:
                self.logger.error("Unable to index %s: %s", archive.name, exc)
                self.logger.debug("Failure details for %s", archive, exc_info=True)
                with self._lock:
                    summary.failed[str(archive)] = str(exc)
                return
            except Exception as exc:
                self.logger.exception("Unexpected failure indexing %s: %s", archive.name, exc)
                with self._lock:
                    summary.failed[str(archive)] = f"{type(exc).__name__}: {exc}"
                return
            with self._lock:
                if release is None:
                    summary.skipped.append(str(archive))
                else:
                    summary.indexed.append(str(archive))
                    touched.add(release.distribution)

        if self.config.workers > 1 and len(archives) > 1:
            with ThreadPoolExecutor(max_workers=self.config.workers) as pool:
                list(pool.map(handle, archives))
        else:
            for archive in archives:
                handle(archive)

        for distribution in sorted(touched):
            self.update_statuses(distribution)
        self.store.persist()

        self.logger.info(
            "Indexed %d archives (%d skipped, %d failed)",
            len(summary.indexed),
            len(summary.skipped),
            len(summary.failed),
        )
        return summary

    def index_archive(self, archive: Path) -> Optional[Release]:
        """Index one archive; ``None`` when it was skipped as naughty."""
        builder = ReleaseBuilder(
            archive,
            config=self.config,
            gateway=self.gateway,
            permissions=self.permissions,
            discoverer=self.discoverer,
            renderer=self.renderer,
        )
        if builder.classification is Classification.NAUGHTY:
            self.logger.warning("Skipping naughty archive %s", archive.name)
            return None

        author, name = builder.author, builder.name
        with self._workspace() as directory:
            try:
                built = builder.build(directory, self.store.bulk("file", size=self.bulk_size))
            except Exception:
                self._discard_files(author, name)
                raise
            self._commit_files(built)

        release = built.release
        self.store.put("release", release.to_dict(), refresh=True)
        try:
            self.store.put(
                "distribution",
                {"id": release.distribution, "name": release.distribution},
                create=True,
            )
        except DocumentExistsError:
            pass
        return release

    def update_statuses(self, distribution: str) -> List[Release]:
        """Recompute latest/cpan/backpan for every stored release of ``distribution``."""
        releases = [
            Release.from_dict(doc)
            for doc in self.store.search("release", Term("distribution", distribution))
        ]
        if not releases:
            return []
        on_mirror = None
        cpan = self.config.cpan
        if cpan is not None:
            on_mirror = {release.archive for release in releases if self._on_mirror(release, cpan)}
        current = self.packages.archives() if self.packages is not None else None
        resolve_statuses(releases, on_mirror=on_mirror, current=current)

        for release in releases:
            self.store.put("release", release.to_dict())
            files = self.store.search(
                "file",
                And(Term("release", release.name), Term("author", release.author)),
            )
            for doc in files:
                doc["status"] = release.status
            self.store.put_many("file", files)
        return releases

    # ------------------------------------------------------------------
    # Internal helpers

    def _commit_files(self, built: BuiltRelease) -> None:
        # Documents written during the walk predate discovery and policy.
        with self.store.bulk("file") as bulk:
            for file in built.files:
                bulk.put(file.to_dict())

    def _discard_files(self, author: str, name: str) -> None:
        # Bulk batches may already have reached the store.
        stale = self.store.search("file", And(Term("release", name), Term("author", author)))
        for doc in stale:
            self.store.delete("file", doc["id"])
        if stale:
            self.logger.debug("Discarded %d partial file documents of %s", len(stale), name)

    def _on_mirror(self, release: Release, cpan: Path) -> bool:
        directory = cpan / "authors" / "id" / author_dir(release.author)
        if self.config.perl6:
            directory = directory / "Perl6"
        return (directory / release.archive).is_file()

    @contextmanager
    def _workspace(self) -> Iterator[Path]:
        base = self.config.work_dir
        if base is not None:
            base.mkdir(parents=True, exist_ok=True)
        with tempfile.TemporaryDirectory(prefix="distindex-", dir=base) as directory:
            yield Path(directory)


__all__ = ["IndexRun", "RunSummary"]
