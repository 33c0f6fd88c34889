"""File documents: one per filesystem entry inside a release."""

from __future__ import annotations

import base64
import hashlib
import mimetypes
import re
from functools import cached_property
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, Tuple, Union

from ..logging import get_logger
from ..metadata import DistMeta
from ..models import Module, Stat
from ..pod import (
    NameSection,
    PodRenderer,
    PodTextRenderer,
    collapse_whitespace,
    count_sloc,
    escape_pseudo_directives,
    extract_section,
    parse_name_section,
    pod_lines,
)
from ..version import numify_version

NOT_PERL_FILES = ("SIGNATURE",)
PERL_SCRIPT_MIME = "text/x-script.perl"
MAX_EXTENSIONLESS_SIZE = 2**17

_PERL_EXTENSIONS = re.compile(r"\.(pl|pm|pod|t)$", re.IGNORECASE)
_PERL6_EXTENSIONS = re.compile(
    r"\.((pl|pm|pod|t)6?|p6|raku|rakumod|rakudoc|rakutest)$", re.IGNORECASE
)
_POD_EXTENSIONS = re.compile(r"\.pod$", re.IGNORECASE)
_POD6_EXTENSIONS = re.compile(r"\.(pod6?|rakudoc)$", re.IGNORECASE)

_MIME = mimetypes.MimeTypes()
for _extension, _type in (
    (".t", PERL_SCRIPT_MIME),
    (".pl", PERL_SCRIPT_MIME),
    (".pm", PERL_SCRIPT_MIME),
    (".pod", "text/x-pod"),
    (".xs", "text/x-c"),
):
    _MIME.add_type(_type, _extension)

_DESCRIPTION_RENDERER = PodTextRenderer()

logger = get_logger("document")


class ContentProvider(Protocol):
    """Supplies the raw bytes of a file on demand."""

    def read(self) -> bytes:
        ...


class BytesContent:
    """In-memory content, mostly for tests and synthetic documents."""

    def __init__(self, data: Union[bytes, str] = b"") -> None:
        self._data = data.encode("utf-8") if isinstance(data, str) else data

    def read(self) -> bytes:
        return self._data


class PathContent:
    """Deferred read of a file on the local filesystem."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def read(self) -> bytes:
        return self.path.read_bytes()


def document_id(*parts: str) -> str:
    """Digest identifying a document by its key fields."""
    # Undecodable archive member names arrive surrogate-escaped.
    digest = hashlib.sha1("\0".join(parts).encode("utf-8", "surrogateescape")).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")


class File:
    """A file or directory belonging to a release.

    Derived attributes (abstract, documentation, pod text, line counts) are
    computed on first access and cached. ``documentation`` depends on the
    attached modules and is invalidated whenever modules change.
    """

    def __init__(
        self,
        *,
        path: str,
        name: str,
        author: str,
        release: str,
        distribution: str,
        stat: Optional[Stat] = None,
        content: Optional[ContentProvider] = None,
        binary: bool = False,
        directory: bool = False,
        date: str = "",
        maturity: str = "released",
        status: str = "cpan",
        version: Optional[str] = None,
        metadata: Optional[DistMeta] = None,
        local_path: Optional[Path] = None,
        perl6: bool = False,
        renderer: Optional[PodRenderer] = None,
        modules: Iterable[Union[Module, Mapping[str, Any]]] = (),
        indexed: Optional[bool] = None,
        authorized: bool = True,
    ) -> None:
        self.path = path
        self.name = name
        self.author = author
        self.release = release
        self.distribution = distribution
        self.stat = stat or Stat(mode=0, uid=0, gid=0, size=0, mtime=0)
        self.binary = binary
        self.directory = directory
        self.date = date
        self.maturity = maturity
        self.status = status
        self.version = version
        self.metadata = metadata
        self.local_path = local_path
        self.perl6 = perl6
        self.renderer: PodRenderer = renderer or PodTextRenderer()
        self.authorized = authorized
        self.modules: List[Module] = []
        self._content = content or BytesContent()
        self._indexed = indexed
        self.add_module(*modules)

    def __repr__(self) -> str:
        return f"File({self.release}/{self.path or self.name})"

    # ------------------------------------------------------------------
    # Identity

    @property
    def id(self) -> str:
        return document_id(self.author, self.release, self.path)

    @property
    def full_path(self) -> str:
        return "/".join((self.author, self.release, self.path))

    @property
    def level(self) -> int:
        return len(self.path.split("/")) - 1

    @cached_property
    def version_numified(self) -> float:
        return numify_version(self.version) if self.version else 0.0

    # ------------------------------------------------------------------
    # Content

    @cached_property
    def content(self) -> bytes:
        if self.directory:
            return b""
        try:
            return self._content.read()
        except OSError as exc:
            logger.warning("Unable to read %s: %s", self.full_path, exc)
            return b""

    @cached_property
    def text(self) -> str:
        return self.content.decode("utf-8", errors="replace")

    @cached_property
    def mime(self) -> str:
        if not self.directory and "." not in self.name and self.name not in NOT_PERL_FILES:
            if re.match(r"#!.*?perl", self.text):
                return PERL_SCRIPT_MIME
            return "text/plain"
        guessed, _ = _MIME.guess_type(self.name, strict=False)
        return guessed or "text/plain"

    @cached_property
    def is_perl_file(self) -> bool:
        """True for files whose POD and packages are worth parsing.

        Known extensions always qualify; extension-less files qualify when
        they are text, below 128 KiB and not on the exclusion list.
        """
        if self.directory:
            return False
        if _PERL_EXTENSIONS.search(self.name):
            return True
        if self.perl6 and _PERL6_EXTENSIONS.search(self.name):
            return True
        if self.mime == PERL_SCRIPT_MIME:
            return True
        return (
            "." not in self.name
            and self.name not in NOT_PERL_FILES
            and not self.binary
            and self.stat.size < MAX_EXTENSIONLESS_SIZE
        )

    @property
    def is_pod_file(self) -> bool:
        pattern = _POD6_EXTENSIONS if self.perl6 else _POD_EXTENSIONS
        return bool(pattern.search(self.name))

    # ------------------------------------------------------------------
    # Documentation

    @cached_property
    def name_section(self) -> NameSection:
        if not self.is_perl_file:
            return NameSection(documentation=None, abstract=None)
        section = extract_section(self.text, "NAME")
        if not section and self.is_pod_file:
            section = re.sub(r"^(lib|pod|docs)/", "", self.path)
            section = re.sub(r"\.(pod6?|rakudoc)$", "", section)
            section = section.replace("/", "::")
        if not section:
            return NameSection(documentation=None, abstract=None)
        return parse_name_section(section)

    @property
    def abstract(self) -> Optional[str]:
        return self.name_section.abstract

    @cached_property
    def description(self) -> Optional[str]:
        if not self.is_perl_file:
            return None
        section = extract_section(self.text, "DESCRIPTION")
        if not section:
            return None
        try:
            text = _DESCRIPTION_RENDERER.render(f"=pod\n\n{section}")
        except Exception as exc:
            logger.warning("Unable to render DESCRIPTION of %s: %s", self.full_path, exc)
            return None
        return collapse_whitespace(text) or None

    @cached_property
    def pod(self) -> str:
        """Plain-text rendering of the file's POD with whitespace collapsed."""
        if not self.is_perl_file:
            return ""
        source = self.text if self.perl6 else escape_pseudo_directives(self.text)
        try:
            text = self.renderer.render(source)
        except Exception as exc:
            logger.warning("Unable to render POD of %s: %s", self.full_path, exc)
            return ""
        return collapse_whitespace(text).replace("\0", "")

    @cached_property
    def _pod_spans(self) -> Tuple[List[List[int]], int]:
        if not self.is_perl_file:
            return [], 0
        return pod_lines(self.text)

    @property
    def pod_lines(self) -> List[List[int]]:
        return self._pod_spans[0]

    @property
    def slop(self) -> int:
        return self._pod_spans[1]

    @cached_property
    def sloc(self) -> int:
        if not self.is_perl_file:
            return 0
        return count_sloc(self.text, self.pod_lines)

    @cached_property
    def documentation(self) -> Optional[str]:
        """Name under which this file's documentation is searchable."""
        extracted = self.name_section.documentation
        if not self.pod:
            return None
        if extracted and self.is_pod_file:
            return extracted
        if extracted and any(module.name == extracted for module in self.modules):
            return extracted
        indexed = [module for module in self.modules if module.is_indexed]
        if indexed:
            return indexed[0].name
        if not self.modules:
            return extracted
        return None

    def clear_documentation(self) -> None:
        self.__dict__.pop("documentation", None)

    # ------------------------------------------------------------------
    # Modules and flags

    def add_module(self, *modules: Union[Module, Mapping[str, Any]]) -> None:
        for module in modules:
            self.modules.append(module if isinstance(module, Module) else Module.from_dict(module))
        if modules:
            self.clear_documentation()

    def module_named(self, name: str) -> Optional[Module]:
        for module in self.modules:
            if module.name == name:
                return module
        return None

    @property
    def indexed(self) -> bool:
        if self._indexed is None:
            from ..policy import is_ancillary_file

            self._indexed = not is_ancillary_file(self.path) and (
                self.metadata is None or self.metadata.should_index_file(self.path)
            )
        return self._indexed

    @indexed.setter
    def indexed(self, value: bool) -> None:
        self._indexed = bool(value)

    # ------------------------------------------------------------------
    # Serialisation

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "path": self.path,
            "name": self.name,
            "author": self.author,
            "release": self.release,
            "distribution": self.distribution,
            "binary": self.binary,
            "directory": self.directory,
            "date": self.date,
            "maturity": self.maturity,
            "status": self.status,
            "stat": self.stat.to_dict(),
            "mime": self.mime,
            "level": self.level,
            "indexed": self.indexed,
            "authorized": self.authorized,
            "module": [module.to_dict() for module in self.modules],
            "pod": self.pod,
            "pod_lines": self.pod_lines,
            "sloc": self.sloc,
            "slop": self.slop,
            "version_numified": self.version_numified,
        }
        optional = {
            "version": self.version,
            "abstract": self.abstract,
            "description": self.description,
            "documentation": self.documentation,
        }
        data.update({key: value for key, value in optional.items() if value is not None})
        return data


__all__ = [
    "BytesContent",
    "ContentProvider",
    "File",
    "NOT_PERL_FILES",
    "PathContent",
    "document_id",
]
