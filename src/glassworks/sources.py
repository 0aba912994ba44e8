"""Source list resolution, the template pass and concatenation."""

from __future__ import annotations

import re
from functools import lru_cache
from pathlib import Path, PurePosixPath
from typing import Any, Dict, Iterable, List, Mapping, Sequence

from jinja2 import Environment, StrictUndefined, TemplateError
from loguru import logger
from pathspec import PathSpec

from .config import ConcatConfig, FoldersConfig, SourcesConfig, StripBannersConfig
from .errors import ConfigError, MissingSource, ParseFailure


def compile_patterns(patterns: Iterable[str]) -> PathSpec:
    """Compile gitignore-style glob patterns."""

    return PathSpec.from_lines("gitwildmatch", list(patterns))


def expand_pattern(pattern: str, folders: FoldersConfig, name: str) -> str:
    """Replace ``{src}``, ``{dist}``, ``{demo}``, ``{test}`` and ``{name}``."""

    values = dict(folders.model_dump(), name=name)
    try:
        return pattern.format_map(values)
    except (KeyError, ValueError, IndexError) as exc:
        raise ConfigError(f"Cannot expand path pattern '{pattern}': {exc}") from exc


def match_files(root: Path, patterns: Sequence[str]) -> List[Path]:
    """Return files under ``root`` matching ``patterns``, sorted by relative path."""

    if not patterns:
        return []
    spec = compile_patterns(patterns)
    matches = [
        path
        for path in root.rglob("*")
        if path.is_file() and spec.match_file(path.relative_to(root).as_posix())
    ]
    return sorted(matches, key=lambda path: path.relative_to(root).as_posix())


def _normalize_entry(entry: str) -> str:
    return PurePosixPath(entry.replace("\\", "/")).as_posix()


def resolve_sources(root: Path, folders: FoldersConfig, sources: SourcesConfig) -> List[Path]:
    """Resolve the ordered source list: head entries, glob matches, tail entries.

    Glob matches never include a file listed in the head or tail, nor one
    matching an exclude pattern, so no file is concatenated twice.
    """

    src_root = root / folders.src
    head = [_normalize_entry(entry) for entry in sources.head]
    tail = [_normalize_entry(entry) for entry in sources.tail]
    explicit = set(head) | set(tail)

    middle: List[str] = []
    if src_root.is_dir() and sources.include:
        include = compile_patterns(sources.include)
        exclude = compile_patterns(sources.exclude)
        for path in src_root.rglob("*"):
            if not path.is_file():
                continue
            relative = path.relative_to(src_root).as_posix()
            if relative in explicit or exclude.match_file(relative):
                continue
            if include.match_file(relative):
                middle.append(relative)
        middle.sort()

    ordered: List[str] = []
    seen: set[str] = set()
    for relative in head + middle + tail:
        if relative not in seen:
            seen.add(relative)
            ordered.append(relative)
    return [src_root / relative for relative in ordered]


@lru_cache(maxsize=None)
def _environment() -> Environment:
    # grunt-style <%= ... %> interpolation; every other delimiter is set to a
    # sequence that does not occur in JavaScript.
    return Environment(
        variable_start_string="<%=",
        variable_end_string="%>",
        block_start_string="<%~",
        block_end_string="~%>",
        comment_start_string="<%#",
        comment_end_string="#%>",
        keep_trailing_newline=True,
        undefined=StrictUndefined,
        autoescape=False,
    )


def render_template(variables: Mapping[str, Any], text: str, *, source: str = "<template>") -> str:
    """Substitute ``<%= ... %>`` expressions in ``text``."""

    if "<%" not in text:
        return text
    try:
        return _environment().from_string(text).render(**variables)
    except TemplateError as exc:
        raise ParseFailure(f"Template error in {source}: {exc}") from exc


def strip_banner(text: str, options: StripBannersConfig) -> str:
    """Remove the leading comment banner, keeping ``/*! ... */`` unless ``block`` is set."""

    alternatives = []
    if options.line:
        alternatives.append(r"(?:[ \t]*//.*\r?\n)+\s*")
    if options.block:
        alternatives.append(r"/\*[\s\S]*?\*/")
    else:
        alternatives.append(r"/\*[^!][\s\S]*?\*/")
    pattern = re.compile(r"^\s*(?:" + "|".join(alternatives) + r")\s*")
    return pattern.sub("", text, count=1)


def concatenate(
    files: Sequence[Path], options: ConcatConfig, variables: Mapping[str, Any]
) -> str:
    """Read, render and strip each file in order and join with the separator."""

    parts: List[str] = []
    for path in files:
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise MissingSource(f"Source file cannot be read: {path} ({exc.strerror or exc})") from exc
        if options.process:
            text = render_template(variables, text, source=str(path))
        if options.strip_banners is not None:
            text = strip_banner(text, options.strip_banners)
        parts.append(text)
    return options.separator.join(parts)


def write_concatenated(
    root: Path,
    folders: FoldersConfig,
    sources: SourcesConfig,
    options: ConcatConfig,
    variables: Dict[str, Any],
    destination: Path,
) -> List[Path]:
    """Concatenate the resolved source list into ``destination``."""

    files = resolve_sources(root, folders, sources)
    logger.debug("Concatenating {} source file(s)", len(files))
    output = concatenate(files, options, variables)
    destination.parent.mkdir(parents=True, exist_ok=True)
    destination.write_bytes(output.encode("utf-8"))
    logger.info("File {} created ({} bytes)", destination, destination.stat().st_size)
    return files


__all__ = [
    "compile_patterns",
    "concatenate",
    "expand_pattern",
    "match_files",
    "render_template",
    "resolve_sources",
    "strip_banner",
    "write_concatenated",
]
