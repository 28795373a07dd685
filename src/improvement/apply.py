"""Persist instruction documents with version management and rollback."""
import logging
import re
from pathlib import Path
from typing import Optional, Tuple

from training.store import ExampleStore

from .refiner import InstructionSet, base_instructions

logger = logging.getLogger(__name__)

INSTRUCTIONS_FILENAME = "extraction.md"
SNAPSHOT_DIRNAME = "instruction-changes"


def instructions_path(store: ExampleStore) -> Path:
    return store.instructions_dir / INSTRUCTIONS_FILENAME


def parse_instruction_version(content: str) -> str:
    """
    Extract version from the instruction header.

    Looks for vX.Y.Z in the first 10 lines. Returns "1.0.0" if not found.
    """
    header = "\n".join(content.split("\n")[:10])
    match = re.search(r"[Vv](\d+\.\d+\.\d+)", header)
    if match:
        return match.group(1)
    return "1.0.0"


_BUMP_POSITIONS = {"major": 0, "minor": 1, "patch": 2}


def bump_version(current: str, bump_type: str) -> str:
    """Increment one part of an X.Y.Z version and zero the parts after it."""
    if bump_type not in _BUMP_POSITIONS:
        raise ValueError(f"Invalid bump_type: {bump_type}")
    parts = [int(p) for p in current.split(".")[:3]]
    parts += [0] * (3 - len(parts))
    position = _BUMP_POSITIONS[bump_type]
    parts[position] += 1
    parts[position + 1:] = [0] * (2 - position)
    return ".".join(str(p) for p in parts)


def apply_version_to_content(content: str, version: str) -> str:
    """Put `v{version}` on the first heading, replacing any existing version."""
    content = strip_version(content)
    lines = content.split("\n")
    for i, line in enumerate(lines):
        if line.startswith("# "):
            lines[i] = f"{line} v{version}"
            break
    return "\n".join(lines)


def strip_version(content: str) -> str:
    """Remove the version suffix from the first heading."""
    return re.sub(r"^(# .*?) [Vv]\d+\.\d+\.\d+$", r"\1", content, count=1, flags=re.MULTILINE)


def load_current_instructions(store: ExampleStore) -> Tuple[str, str]:
    """
    Return (version, text) of the installed instructions.

    Falls back to the unversioned base instructions when none are installed.
    """
    path = instructions_path(store)
    if not path.exists():
        return "1.0.0", base_instructions().text
    content = store.read_text(path)
    return parse_instruction_version(content), strip_version(content)


def save_instruction_snapshot(store: ExampleStore, iteration: int) -> Optional[Path]:
    """Copy the installed instructions into the iteration's snapshot folder."""
    path = instructions_path(store)
    if not path.exists():
        return None
    content = store.read_text(path)
    version = parse_instruction_version(content)
    snapshot_path = store.get_iteration_dir(iteration) / SNAPSHOT_DIRNAME / f"extraction-v{version}.md"
    store.write_text(snapshot_path, content)
    return snapshot_path


def apply_instructions(
    store: ExampleStore,
    instructions: InstructionSet,
    iteration: int,
) -> Tuple[str, str]:
    """
    Install an instruction document, bumping the minor version on change.

    Process:
    1. Compare with the installed text; identical text is a no-op
    2. Snapshot the previous file into the iteration folder
    3. Write the new text with a bumped version header

    Returns:
        Tuple of (old_version, new_version)
    """
    path = instructions_path(store)
    old_version, old_text = load_current_instructions(store)

    if path.exists() and old_text == instructions.text:
        return old_version, old_version

    if path.exists():
        save_instruction_snapshot(store, iteration)
        new_version = bump_version(old_version, "minor")
    else:
        new_version = old_version

    store.write_text(path, apply_version_to_content(instructions.text, new_version))
    logger.info(f"Extraction instructions updated: v{old_version} -> v{new_version}")
    return old_version, new_version


def rollback_instructions(store: ExampleStore, iteration: int) -> Optional[str]:
    """
    Restore the instructions snapshotted in a given iteration.

    Returns:
        The restored version, or None if that iteration has no snapshot
    """
    changes_dir = store.get_iteration_dir(iteration) / SNAPSHOT_DIRNAME
    if not changes_dir.exists():
        return None
    snapshots = sorted(changes_dir.glob("extraction-v*.md"))
    if not snapshots:
        return None
    content = store.read_text(snapshots[0])
    store.write_text(instructions_path(store), content)
    return parse_instruction_version(content)
