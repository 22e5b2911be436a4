"""
Moves bundle directories between stage roots.

Stage roots may live on different devices, so a move is always a full copy,
a verification pass, and only then removal of the source.
"""
import logging
import os
import shutil
from pathlib import Path

from .errors import RelocationError

logger = logging.getLogger(__name__)


def tree_snapshot(root: Path) -> dict[str, int]:
    """Map every entry under ``root`` (relative path) to its size; directories map to -1."""
    snapshot = {}
    for dirpath, dirnames, filenames in os.walk(root):
        base = Path(dirpath)
        for name in dirnames:
            snapshot[str((base / name).relative_to(root))] = -1
        for name in filenames:
            path = base / name
            snapshot[str(path.relative_to(root))] = path.stat().st_size
    return snapshot


def _diff(source: dict[str, int], copy: dict[str, int]) -> str | None:
    if len(source) != len(copy):
        return f"entry count differs ({len(source)} vs {len(copy)})"
    for rel, size in source.items():
        if rel not in copy:
            return f"{rel} is missing from the copy"
        if copy[rel] != size:
            return f"{rel} has size {copy[rel]}, expected {size}"
    return None


def relocate(bundle_name: str, from_root, to_root) -> Path:
    """
    Move ``from_root/bundle_name`` to ``to_root/bundle_name``.

    Safe to re-invoke after a crash: a destination that already matches the
    source is kept and only the stale source is removed; a destination left
    behind without its source is treated as an already finished move.
    """
    src = Path(from_root) / bundle_name
    dest = Path(to_root) / bundle_name

    if not src.exists():
        if dest.is_dir():
            logger.info("Bundle %s already relocated to %s", bundle_name, dest)
            return dest
        raise RelocationError(f"Bundle {bundle_name} not found in {from_root}")
    if not src.is_dir():
        raise RelocationError(f"{src} is not a directory")

    try:
        expected = tree_snapshot(src)
    except OSError as exc:
        raise RelocationError(f"Cannot read {src}: {exc}") from exc

    try:
        if dest.exists():
            if dest.is_dir() and _diff(expected, tree_snapshot(dest)) is None:
                logger.info("Found complete copy of %s at %s, removing stale source", bundle_name, dest)
            else:
                logger.warning("Removing incomplete copy of %s at %s", bundle_name, dest)
                _remove(dest)
                _copy(src, dest)
        else:
            _copy(src, dest)
    except OSError as exc:
        raise RelocationError(f"Copying {bundle_name} to {to_root} failed: {exc}") from exc

    problem = _diff(expected, tree_snapshot(dest))
    if problem:
        raise RelocationError(f"Verification of {bundle_name} in {to_root} failed: {problem}")

    try:
        shutil.rmtree(src)
    except OSError as exc:
        raise RelocationError(f"Copied {bundle_name} but could not remove {src}: {exc}") from exc

    logger.info("Relocated %s: %s -> %s", bundle_name, from_root, to_root)
    return dest


def _copy(src: Path, dest: Path) -> None:
    dest.parent.mkdir(parents=True, exist_ok=True)
    shutil.copytree(src, dest, copy_function=shutil.copy2)


def _remove(path: Path) -> None:
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    else:
        path.unlink()


def ensure_stage_roots(roots) -> None:
    """Create missing stage roots and check that each one is writable."""
    for root in roots:
        root = Path(root)
        try:
            root.mkdir(parents=True, exist_ok=True)
            marker = root / ".write-test"
            marker.write_text("ok")
            marker.unlink()
        except OSError as exc:
            raise RelocationError(f"Stage root {root} is not writable: {exc}") from exc
        logger.debug("Stage root %s is ready", root)
