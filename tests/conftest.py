from __future__ import annotations

import json
import sys
from pathlib import Path

import pytest

from glassworks.config import Config, ShellCommand, default_config

FAKE_LINT = '''
import sys

files = []
skip = False
for arg in sys.argv[1:]:
    if skip:
        skip = False
        continue
    if arg == "--config":
        skip = True
        continue
    files.append(arg)

found = 0
for name in files:
    with open(name, encoding="utf-8") as handle:
        for number, line in enumerate(handle, start=1):
            column = line.find("debugger")
            if column != -1:
                print(f"{name}:{number}:{column + 1}: Forbidden 'debugger' statement.")
                found += 1
if found:
    print()
    print(f"{found} error(s)")
    sys.exit(2)
'''

FAKE_HARNESS = '''
import sys

with open(sys.argv[1], encoding="utf-8") as handle:
    text = handle.read()
if "FAIL" in text:
    print("1 assertion failed in " + sys.argv[1])
    sys.exit(1)
print("all assertions passed")
'''

COUNTER = '''
import sys

with open(sys.argv[1], "a", encoding="utf-8") as handle:
    handle.write("run\\n")
'''

FAILING = '''
import sys

print("boom")
sys.exit(3)
'''

SOURCES = {
    "_intro.js": "/* intro banner */\n(function (root) {\n",
    "main.js": "var Webglass = function (options) {\n  this.options = options;\n};\n",
    "utils/ajax.js": "Webglass.ajax = function (request) {\n  return request.url + request.file;\n};\n",
    "shaders.js": "Webglass.shaders = [];\n",
    "version.js": "Webglass.version = '<%= pkg.version %>';\n",
    "_outro.js": "root.Webglass = Webglass;\n})(this);\n",
}


def write_files(root: Path, files: dict[str, str]) -> None:
    for relative, text in files.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text)


@pytest.fixture()
def tools(tmp_path: Path) -> Path:
    folder = tmp_path / "tools"
    folder.mkdir()
    (folder / "fake_lint.py").write_text(FAKE_LINT)
    (folder / "fake_harness.py").write_text(FAKE_HARNESS)
    (folder / "counter.py").write_text(COUNTER)
    (folder / "failing.py").write_text(FAILING)
    return folder


@pytest.fixture()
def project(tmp_path: Path) -> Path:
    root = tmp_path / "project"
    write_files(root / "src", SOURCES)
    write_files(
        root,
        {
            "package.json": json.dumps({"name": "webglass", "version": "0.3.1"}, indent=2),
            "test/index.html": "<html><body>ok</body></html>",
            "demo/index.html": "<html><body>demo</body></html>",
        },
    )
    return root


@pytest.fixture()
def config(tools: Path, tmp_path: Path) -> Config:
    python = Path(sys.executable).as_posix()
    counter_log = (tmp_path / "runs.log").as_posix()

    cfg = default_config()
    cfg.lint.command = [sys.executable, str(tools / "fake_lint.py")]
    cfg.test.command = [sys.executable, str(tools / "fake_harness.py"), "{file}"]
    cfg.serve.livereload = None
    cfg.serve.open = False
    cfg.shell["count"] = ShellCommand(
        command=f'"{python}" "{(tools / "counter.py").as_posix()}" "{counter_log}"'
    )
    cfg.shell["fail"] = ShellCommand(command=f'"{python}" "{(tools / "failing.py").as_posix()}"')
    cfg.shell["missing"] = ShellCommand(command="glassworks-no-such-tool --version")
    return cfg


@pytest.fixture()
def run_count(tmp_path: Path):
    def _count() -> int:
        log = tmp_path / "runs.log"
        if not log.exists():
            return 0
        return len(log.read_text().splitlines())

    return _count
