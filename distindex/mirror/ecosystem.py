"""Mirror the Perl 6 ecosystem into a CPAN-style authors tree.

Each project listed by the ecosystem API is cloned (or updated), given a
``META6.json`` with a normalized version, committed, and packaged with
``git archive`` as ``authors/id/<A>/<AU>/<AUTHOR>/Perl6/<Name>-<ver>.tar.gz``.
"""

from __future__ import annotations

import json
import os
import re
import shutil
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from ..config import DEFAULT_ECOSYSTEM_URL
from ..distinfo import author_dir
from ..errors import IndexerError
from ..logging import get_logger
from ..version import normalize_version

WIP_MESSAGE = "WIP - add META6.json"
EXCLUDED_PROJECTS = ("Tardis",)

Fetcher = Callable[[str], bytes]
GitRunner = Callable[..., str]


@dataclass
class MirrorSummary:
    archived: List[Path] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)


class EcosystemMirror:
    """Clones ecosystem projects and packages them as release archives."""

    def __init__(
        self,
        repo_dir: Path,
        dist_dir: Path,
        *,
        author: str = "JDV",
        url: str = DEFAULT_ECOSYSTEM_URL,
        skip_repos: Sequence[str] = (),
        fetcher: Fetcher | None = None,
        runner: GitRunner | None = None,
        timeout: float = 60.0,
    ) -> None:
        self.repo_dir = repo_dir
        self.dist_dir = dist_dir
        self.author = author.upper()
        self.url = url
        self.skip_repos = tuple(skip_repos)
        self.timeout = timeout
        self._fetcher = fetcher or self._http_fetch
        self._runner = runner or self._default_runner
        self.logger = get_logger("mirror")

    def run(self) -> MirrorSummary:
        summary = MirrorSummary()
        for url in self.repo_urls():
            base = repo_basename(url)
            try:
                archive = self.mirror_repo(url)
            except (IndexerError, OSError, subprocess.CalledProcessError) as exc:
                self.logger.error("Unable to mirror %s: %s", url, exc)
                summary.failed[base] = str(exc)
                continue
            if archive is not None:
                summary.archived.append(archive)
        return summary

    def repo_urls(self) -> List[str]:
        """Fetch the project list and derive one git URL per project."""
        try:
            projects = json.loads(self._fetcher(self.url).decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise IndexerError(f"Malformed project list from {self.url}: {exc}") from exc
        if not isinstance(projects, list):
            raise IndexerError(f"Project list from {self.url} is not a list")

        urls: List[str] = []
        for project in projects:
            if not isinstance(project, dict) or project.get("name") in EXCLUDED_PROJECTS:
                continue
            uri = project.get("source-url") or (project.get("support") or {}).get("source")
            if not uri:
                raise IndexerError(f"Project {project.get('name')!r} has no source URL")
            if uri.startswith("https"):
                uri = re.sub(r"/$", ".git", uri)
            if uri in urls:
                raise IndexerError(f"Duplicate repository: {uri}")
            urls.append(uri)
        return urls

    def mirror_repo(self, url: str) -> Optional[Path]:
        base = repo_basename(url)
        self.logger.info("Mirroring %s (%s)", url, base)
        repo = self.repo_dir / base
        self.repo_dir.mkdir(parents=True, exist_ok=True)
        if repo.exists():
            self._git(["pull", "--rebase", "--stat"], cwd=repo)
        else:
            self._git(["clone", url], cwd=self.repo_dir)

        if base in self.skip_repos:
            self.logger.info("Skipping %s", base)
            return None

        history = self._git(["log", "HEAD~1..", "--oneline"], cwd=repo, capture_output=True)
        if WIP_MESSAGE in history:
            self._git(["reset", "--hard", "HEAD~1"], cwd=repo)
        self._git(["clean", "-dfx"], cwd=repo)

        meta = self.prepare_meta(repo)
        self._git(["add", "META6.json"], cwd=repo)
        if self._git(["status", "--porcelain"], cwd=repo, capture_output=True).strip():
            self._git(["commit", "-m", WIP_MESSAGE], cwd=repo, env=_commit_env())

        tar_base = f"{meta['name'].replace('::', '-')}-{meta['version'].removeprefix('v')}"
        target = self.dist_dir / author_dir(self.author) / "Perl6" / f"{tar_base}.tar.gz"
        target.parent.mkdir(parents=True, exist_ok=True)
        self._git(
            ["archive", "--format=tar.gz", f"--prefix={tar_base}/", "-o", str(target), "HEAD"],
            cwd=repo,
        )
        return target

    def prepare_meta(self, repo: Path) -> Dict[str, Any]:
        """Ensure ``META6.json`` exists and carries a normalized version."""
        meta_file = repo / "META6.json"
        if meta_file.is_symlink():
            meta_file.unlink()
        if not meta_file.exists():
            legacy = repo / "META.info"
            if not legacy.exists():
                raise IndexerError(f"{repo.name} has neither META6.json nor META.info")
            shutil.copyfile(legacy, meta_file)

        try:
            meta = json.loads(meta_file.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise IndexerError(f"{meta_file}: {exc}") from exc
        if not isinstance(meta, dict) or not meta.get("name"):
            raise IndexerError(f"{meta_file} has no name")
        meta["version"] = normalize_version(meta.get("version")).display
        meta_file.write_text(
            json.dumps(meta, indent=3, sort_keys=True, ensure_ascii=False) + "\n",
            encoding="utf-8",
        )
        return meta

    # ------------------------------------------------------------------
    # Helpers

    def _git(
        self,
        args: Iterable[str],
        *,
        cwd: Path,
        env: dict[str, str] | None = None,
        capture_output: bool = False,
    ) -> str:
        return self._runner(["git", *args], cwd=cwd, env=env, capture_output=capture_output)

    def _http_fetch(self, url: str) -> bytes:
        request = Request(url, headers={"Accept": "application/json"})
        try:
            with urlopen(request, timeout=self.timeout) as response:
                return response.read()
        except HTTPError as exc:  # pragma: no cover - depends on network
            raise IndexerError(f"Fetching {url} failed with status {exc.code}") from exc
        except URLError as exc:  # pragma: no cover - depends on network
            raise IndexerError(f"Fetching {url} failed: {exc.reason}") from exc

    @staticmethod
    def _default_runner(
        args: Iterable[str],
        *,
        cwd: Path,
        env: dict[str, str] | None = None,
        capture_output: bool = False,
    ) -> str:
        completed = subprocess.run(
            list(args),
            cwd=str(cwd),
            env=env,
            check=True,
            text=True,
            capture_output=capture_output,
        )
        if capture_output:
            return completed.stdout
        return ""


def repo_basename(url: str) -> str:
    return re.sub(r"\.git$", "", url.rstrip("/").rsplit("/", 1)[-1])


def _commit_env() -> dict[str, str]:
    env = os.environ.copy()
    env.setdefault("GIT_AUTHOR_NAME", "distindex")
    env.setdefault("GIT_AUTHOR_EMAIL", "distindex@example.com")
    env.setdefault("GIT_COMMITTER_NAME", env["GIT_AUTHOR_NAME"])
    env.setdefault("GIT_COMMITTER_EMAIL", env["GIT_AUTHOR_EMAIL"])
    return env


__all__ = ["EcosystemMirror", "MirrorSummary", "repo_basename"]
