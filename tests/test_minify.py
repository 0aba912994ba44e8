from __future__ import annotations

import json
from pathlib import Path

import pytest

from glassworks.config import MinifyConfig
from glassworks.errors import MissingSource, ParseFailure
from glassworks.minify import minify, write_minified

SOURCE = """// leading comment
var myLongVariableName = 1;

/* block comment */
function readValue() {
    return myLongVariableName;
}
"""


def test_minify_without_mangle_keeps_identifiers() -> None:
    result = minify(SOURCE, mangle=False)
    assert "myLongVariableName" in result.code
    assert "readValue" in result.code
    assert "comment" not in result.code
    assert "    " not in result.code
    assert len(result.code) < len(SOURCE)


def test_minify_with_mangle_renames_locals() -> None:
    source = "function outer() {\n    var myLongVariableName = 1;\n    return myLongVariableName;\n}\n"
    result = minify(source, mangle=True)
    assert "outer" in result.code
    assert "myLongVariableName" not in result.code


def test_minify_syntax_error() -> None:
    with pytest.raises(ParseFailure, match="broken.js"):
        minify("var = ;", sourcepath="broken.js")


def test_banner_shifts_sourcemap() -> None:
    plain = minify(SOURCE, sourcepath="lib.js", filename="lib.min.js")
    bannered = minify(SOURCE, sourcepath="lib.js", filename="lib.min.js", banner="/*! lib */")

    assert bannered.code.startswith("/*! lib */\n")
    assert bannered.code.endswith(plain.code)
    assert bannered.sourcemap["version"] == 3
    assert bannered.sourcemap["file"] == "lib.min.js"
    assert bannered.sourcemap["sources"] == ["lib.js"]
    assert bannered.sourcemap["mappings"] == ";" + plain.sourcemap["mappings"]


def test_write_minified_outputs(tmp_path: Path) -> None:
    source = tmp_path / "lib.js"
    source.write_text(SOURCE)
    destination = tmp_path / "lib.min.js"
    options = MinifyConfig(banner="/*! <%= pkg.name %> */\n", sources_content=True)

    written = write_minified(source, destination, options, {"pkg": {"name": "lib"}})
    map_path = tmp_path / "lib.min.js.map"
    assert written == [destination, map_path]

    code = destination.read_text()
    assert code.startswith("/*! lib */\n")
    assert code.endswith("//# sourceMappingURL=lib.min.js.map")
    sourcemap = json.loads(map_path.read_text())
    assert sourcemap["sourcesContent"] == [SOURCE]


def test_write_minified_without_source_map(tmp_path: Path) -> None:
    source = tmp_path / "lib.js"
    source.write_text(SOURCE)
    destination = tmp_path / "lib.min.js"

    written = write_minified(source, destination, MinifyConfig(source_map=False, banner=""), {})
    assert written == [destination]
    assert "sourceMappingURL" not in destination.read_text()
    assert not (tmp_path / "lib.min.js.map").exists()


def test_write_minified_missing_input(tmp_path: Path) -> None:
    with pytest.raises(MissingSource):
        write_minified(tmp_path / "nope.js", tmp_path / "nope.min.js", MinifyConfig(), {})
