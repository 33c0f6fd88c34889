"""Perl 6 ecosystem mirroring and package index generation."""

from .ecosystem import EcosystemMirror, MirrorSummary, repo_basename
from .indices import IndexBuild, build_indices

__all__ = ["EcosystemMirror", "IndexBuild", "MirrorSummary", "build_indices", "repo_basename"]
