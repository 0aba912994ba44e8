"""Minification and source map generation."""

from __future__ import annotations

import io
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping

from calmjs.parse import es5
from calmjs.parse.exceptions import ECMASyntaxError
from calmjs.parse.sourcemap import encode_sourcemap, write
from calmjs.parse.unparsers.es5 import minify_printer
from loguru import logger

from .config import MinifyConfig
from .errors import MissingSource, ParseFailure
from .sources import render_template


@dataclass(slots=True)
class MinifiedOutput:
    code: str
    sourcemap: Dict[str, Any]


def minify(
    source: str,
    *,
    mangle: bool = False,
    sourcepath: str = "input.js",
    filename: str = "output.min.js",
    banner: str = "",
    sources_content: bool = False,
) -> MinifiedOutput:
    """Minify ES5 ``source`` and build a v3 source map for the result.

    With ``mangle`` disabled identifiers are kept verbatim and only comments
    and whitespace are removed.
    """

    try:
        program = es5(source)
    except ECMASyntaxError as exc:
        raise ParseFailure(f"Cannot minify {sourcepath}: {exc}") from exc
    program.sourcepath = sourcepath

    printer = minify_printer(obfuscate=mangle, drop_semi=True)
    stream = io.StringIO()
    mappings, sources, names = write(printer(program), stream)

    if banner and not banner.endswith("\n"):
        banner += "\n"
    # Each banner line becomes an empty generated line in front of the mappings.
    shifted: List[Any] = [[] for _ in range(banner.count("\n"))] + list(mappings)
    sourcemap = encode_sourcemap(filename, shifted, sources, names)
    if sources_content:
        sourcemap["sourcesContent"] = [source for _ in sourcemap.get("sources", [])]
    return MinifiedOutput(code=banner + stream.getvalue(), sourcemap=sourcemap)


def write_minified(
    source_path: Path,
    destination: Path,
    options: MinifyConfig,
    variables: Mapping[str, Any],
) -> List[Path]:
    """Minify ``source_path`` into ``destination`` and its ``.map`` sibling."""

    try:
        source = source_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise MissingSource(f"Minifier input cannot be read: {source_path}") from exc

    banner = render_template(variables, options.banner, source="minify banner")
    map_path = destination.with_name(destination.name + ".map")
    result = minify(
        source,
        mangle=options.mangle,
        sourcepath=source_path.name,
        filename=destination.name,
        banner=banner,
        sources_content=options.sources_content,
    )

    destination.parent.mkdir(parents=True, exist_ok=True)
    written = [destination]
    code = result.code
    if options.source_map:
        code += f"\n//# sourceMappingURL={map_path.name}"
        map_path.write_text(json.dumps(result.sourcemap), encoding="utf-8")
        written.append(map_path)
    destination.write_text(code, encoding="utf-8")

    logger.info(
        "File {} created: {} bytes -> {} bytes",
        destination,
        len(source.encode("utf-8")),
        len(code.encode("utf-8")),
    )
    if options.source_map:
        logger.info("Source map {} created", map_path)
    return written


__all__ = ["MinifiedOutput", "minify", "write_minified"]
