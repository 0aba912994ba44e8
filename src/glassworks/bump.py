"""Version bumping for the package manifests."""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import List

from loguru import logger

from .config import BumpConfig
from .errors import ConfigError, ExternalToolFailure, ParseFailure
from .tools import run_tool

_SEMVER = re.compile(
    r"^(?P<major>0|[1-9]\d*)\.(?P<minor>0|[1-9]\d*)\.(?P<patch>0|[1-9]\d*)"
    r"(?:-(?P<pre>[0-9A-Za-z.-]+))?(?:\+(?P<build>[0-9A-Za-z.-]+))?$"
)


def increment_version(version: str, part: str = "patch") -> str:
    """Return ``version`` bumped by ``part`` following semver rules."""

    match = _SEMVER.match(version.strip())
    if not match:
        raise ParseFailure(f"'{version}' is not a semantic version")
    major, minor, patch = int(match["major"]), int(match["minor"]), int(match["patch"])
    pre = match["pre"]

    if part == "major":
        if not (pre and minor == 0 and patch == 0):
            major += 1
        return f"{major}.0.0"
    if part == "minor":
        if not (pre and patch == 0):
            minor += 1
        return f"{major}.{minor}.0"
    if part == "patch":
        if not pre:
            patch += 1
        return f"{major}.{minor}.{patch}"
    if part == "prerelease":
        if not pre:
            return f"{major}.{minor}.{patch + 1}-0"
        identifiers = pre.split(".")
        for index in range(len(identifiers) - 1, -1, -1):
            if identifiers[index].isdigit():
                identifiers[index] = str(int(identifiers[index]) + 1)
                break
        else:
            identifiers.append("0")
        return f"{major}.{minor}.{patch}-{'.'.join(identifiers)}"
    raise ParseFailure(f"Unknown version part '{part}'")


def bump_manifests(root: Path, options: BumpConfig, part: str = "patch") -> str:
    """Write the bumped version into every existing manifest file.

    The new version is computed from the first manifest that exists and then
    written to all of them, keeping the files in sync.
    """

    manifests = [root / name for name in options.files if (root / name).is_file()]
    if not manifests:
        raise ConfigError(f"None of the manifest files exist: {', '.join(options.files)}")

    documents = []
    for path in manifests:
        try:
            documents.append(json.loads(path.read_text(encoding="utf-8")))
        except json.JSONDecodeError as exc:
            raise ParseFailure(f"Failed to parse {path}: {exc}") from exc

    current = documents[0].get("version")
    if not isinstance(current, str):
        raise ParseFailure(f"{manifests[0]} does not define a version")
    version = increment_version(current, part)

    for path, document in zip(manifests, documents):
        document["version"] = version
        path.write_text(json.dumps(document, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
        logger.info("Version bumped to {} in {}", version, path.name)

    _release(root, options, version)
    return version


def _git(root: Path, *args: str) -> None:
    proc = run_tool(["git", *args], root)
    if proc.returncode != 0:
        raise ExternalToolFailure(
            f"git {args[0]} exited with status {proc.returncode}",
            exit_code=proc.returncode,
            output=proc.stdout,
        )


def _release(root: Path, options: BumpConfig, version: str) -> List[str]:
    actions: List[str] = []
    if options.commit:
        message = options.commit_message.replace("%VERSION%", version)
        _git(root, "commit", "-m", message, *options.commit_files)
        logger.info("Committed {}", ", ".join(options.commit_files))
        actions.append("commit")
    if options.create_tag:
        tag = options.tag_name.replace("%VERSION%", version)
        message = options.tag_message.replace("%VERSION%", version)
        _git(root, "tag", "-a", tag, "-m", message)
        logger.info("Tagged as {}", tag)
        actions.append("tag")
    return actions


__all__ = ["bump_manifests", "increment_version"]
