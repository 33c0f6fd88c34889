"""Render POD to plain text.

:class:`PodTextRenderer` is the built-in renderer for Perl 5 documentation.
:class:`ExternalPodRenderer` shells out to a documentation tool (``raku
--doc`` by default) for Perl 6 sources, whose POD dialect the built-in
renderer does not understand.
"""

from __future__ import annotations

import html
import re
import subprocess
import tempfile
import textwrap
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Protocol, Sequence, Tuple

from ..errors import RenderError
from ..logging import get_logger

_COMMAND = re.compile(r"^=([a-zA-Z][a-zA-Z0-9]*)\s*(.*)\Z", re.DOTALL)
_CODE_OPEN = re.compile(r"([A-Z])(<+)")
_URL = re.compile(r"^\w+:[^:\s]\S*$")
_ENTITIES = {
    "lt": "<",
    "gt": ">",
    "sol": "/",
    "verbar": "|",
    "quot": '"',
    "amp": "&",
    "apos": "'",
}


class PodRenderer(Protocol):
    def render(self, source: str) -> str:
        ...


def iter_pod_paragraphs(source: str) -> Iterator[str]:
    """Yield the POD paragraphs of ``source``, skipping code between blocks."""
    in_pod = False
    current: List[str] = []
    for line in source.splitlines():
        if not in_pod:
            if re.match(r"^=[a-zA-Z]", line) and not line.startswith("=cut"):
                in_pod = True
                current = [line]
            continue
        if not line.strip():
            if current:
                yield "\n".join(current)
                current = []
            continue
        if not current and line.startswith("=cut"):
            in_pod = False
            continue
        current.append(line)
    if in_pod and current:
        yield "\n".join(current)


class PodTextRenderer:
    """Small POD to text formatter in the spirit of ``Pod::Text``."""

    def __init__(self, *, width: int = 78, indent: int = 4) -> None:
        self.width = width
        self.indent = indent

    def render(self, source: str) -> str:
        blocks: List[str] = []
        levels: List[int] = []
        skipping: List[str] = []
        for paragraph in iter_pod_paragraphs(source):
            command = _COMMAND.match(paragraph)
            if skipping:
                if command and command.group(1) == "end":
                    skipping.pop()
                continue
            margin = self.indent + sum(levels)
            if command is None:
                if paragraph[:1] in (" ", "\t"):
                    blocks.append(textwrap.indent(textwrap.dedent(paragraph), " " * (margin + 4)))
                else:
                    blocks.append(self._fill(self.interpolate(paragraph), margin))
                continue

            name, text = command.group(1), command.group(2)
            if name == "head1":
                blocks.append(self._fill(self.interpolate(text), 0))
            elif name in ("head2", "head3", "head4"):
                blocks.append(self._fill(self.interpolate(text), self.indent // 2))
            elif name == "over":
                levels.append(_over_width(text))
            elif name == "back":
                if levels:
                    levels.pop()
            elif name == "item":
                label = self.interpolate(text).strip()
                label, _, rest = label.partition("\n")
                label = "*" if label in ("", "*") else label
                body = f"{label} {self.interpolate(rest)}".strip()
                blocks.append(self._fill(body, max(margin - (levels[-1] if levels else 0), 0)))
            elif name == "begin":
                if text.split()[:1] not in (["text"], [":text"]):
                    skipping.append(text)
            elif name == "for":
                target, _, body = text.partition(" ")
                if target.lstrip(":") == "text":
                    blocks.append(self._fill(body, margin))
            # =pod, =encoding, =end without =begin and unknown commands render nothing.
        return "\n\n".join(block for block in blocks if block.strip()) + ("\n" if blocks else "")

    def interpolate(self, text: str) -> str:
        """Expand formatting codes such as ``B<>``, ``C<<>>`` and ``L<>``."""
        rendered, _ = self._parse(text, 0, None)
        return rendered

    # ------------------------------------------------------------------
    # Internal helpers

    def _fill(self, text: str, margin: int) -> str:
        collapsed = re.sub(r"\s+", " ", text).strip()
        if not collapsed:
            return ""
        prefix = " " * margin
        return textwrap.fill(
            collapsed,
            width=max(self.width, margin + 20),
            initial_indent=prefix,
            subsequent_indent=prefix,
            break_long_words=False,
            break_on_hyphens=False,
        )

    def _parse(self, text: str, pos: int, closer: Optional[re.Pattern[str]]) -> Tuple[str, int]:
        buffer: List[str] = []
        while pos < len(text):
            if closer is not None:
                end = closer.match(text, pos)
                if end:
                    return "".join(buffer), end.end()
            opened = _CODE_OPEN.match(text, pos)
            if opened:
                letter, brackets = opened.group(1), len(opened.group(2))
                start = opened.end()
                inner_closer = re.compile(">")
                if brackets > 1:
                    space = re.compile(r"\s+").match(text, start)
                    if space:
                        start = space.end()
                        inner_closer = re.compile(r"\s+" + ">" * brackets)
                    else:
                        start = opened.start() + 2
                inner, pos = self._parse(text, start, inner_closer)
                buffer.append(self._format(letter, inner))
                continue
            buffer.append(text[pos])
            pos += 1
        return "".join(buffer), pos

    @staticmethod
    def _format(letter: str, inner: str) -> str:
        if letter in ("X", "Z"):
            return ""
        if letter == "C":
            return f'"{inner}"'
        if letter == "I":
            return f"*{inner}*"
        if letter == "E":
            return _entity(inner)
        if letter == "L":
            return _link_text(inner)
        return inner


def _over_width(text: str) -> int:
    match = re.match(r"\s*(\d+)", text)
    return int(match.group(1)) if match else 4


def _entity(name: str) -> str:
    name = name.strip()
    if name in _ENTITIES:
        return _ENTITIES[name]
    try:
        if name.lower().startswith("0x"):
            return chr(int(name, 16))
        if name.startswith("0") and len(name) > 1:
            return chr(int(name, 8))
        if name.isdigit():
            return chr(int(name))
    except (ValueError, OverflowError):
        return ""
    decoded = html.unescape(f"&{name};")
    return "" if decoded == f"&{name};" else decoded


def _link_text(inner: str) -> str:
    if "|" in inner:
        return inner.split("|", 1)[0]
    if _URL.match(inner):
        return inner
    name, _, section = inner.partition("/")
    section = section.strip().strip('"')
    if section and name:
        return f'"{section}" in {name}'
    if section:
        return f'"{section}"'
    return name


Runner = Callable[[Sequence[str]], Tuple[int, str, str]]


@dataclass
class ExternalPodRenderer:
    """Render documentation by invoking ``<executable> --doc <file>``."""

    executable: str = "raku"
    timeout: Optional[float] = 30.0
    runner: Optional[Runner] = None

    def __post_init__(self) -> None:
        self.logger = get_logger("pod")

    def render(self, source: str) -> str:
        with tempfile.TemporaryDirectory(prefix="distindex-pod-") as tmp:
            path = Path(tmp) / "document.pod6"
            path.write_text(source, encoding="utf-8")
            returncode, stdout, stderr = (self.runner or self._run)(
                [self.executable, "--doc", str(path)]
            )
        if stderr or returncode != 0:
            self.logger.warning("pod6 to text error (exit %s): %s", returncode, stderr.strip())
        if returncode != 0:
            return ""
        return stdout

    def _run(self, args: Sequence[str]) -> Tuple[int, str, str]:
        try:
            completed = subprocess.run(
                list(args),
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except FileNotFoundError as exc:
            raise RenderError(f"Unable to locate '{self.executable}' for POD rendering") from exc
        except subprocess.TimeoutExpired as exc:
            raise RenderError(f"'{self.executable} --doc' timed out") from exc
        return completed.returncode, completed.stdout, completed.stderr


__all__ = [
    "ExternalPodRenderer",
    "PodRenderer",
    "PodTextRenderer",
    "iter_pod_paragraphs",
]
