"""Ephemeral workspace staging: submission payloads written as plain files.

Code and build descriptor reach the sandbox only as file contents, never as
command-line text.
"""

from __future__ import annotations

import tempfile
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING

from runbox.runtime.errors import SandboxError

if TYPE_CHECKING:
    from runbox.models import SourceUnit
    from runbox.runtime.plans import BuildPlan


def create_workspace(root: Path | None = None) -> Path:
    """Create an empty private directory for one execution."""
    try:
        return Path(tempfile.mkdtemp(prefix="runbox-", dir=root))
    except OSError as exc:
        raise SandboxError(f"Cannot create workspace: {exc}") from exc


def write_sources(workspace: Path, plan: BuildPlan, unit: SourceUnit) -> list[Path]:
    """Write the unit's code (and descriptor, if the plan has one) into *workspace*."""
    files = [(plan.source_path, unit.code)]
    if plan.descriptor_path is not None and unit.build_descriptor is not None:
        files.append((plan.descriptor_path, unit.build_descriptor))

    written: list[Path] = []
    for relative, content in files:
        target = _resolve(workspace, relative)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")
        except OSError as exc:
            raise SandboxError(f"Cannot write {relative}: {exc}") from exc
        written.append(target)
    return written


def _resolve(workspace: Path, relative: str) -> Path:
    rel = PurePosixPath(relative)
    if rel.is_absolute() or ".." in rel.parts:
        raise SandboxError(f"Refusing to write outside the workspace: {relative}")
    return workspace.joinpath(*rel.parts)
