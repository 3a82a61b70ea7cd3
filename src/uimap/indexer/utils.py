from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Iterable


def compute_stable_id(language: str, module: str, name: str) -> str:
    raw = f"{language}:{module}:{name}"
    return hashlib.sha1(raw.encode("utf-8")).hexdigest()


def compute_fingerprint(root: Path, relative_paths: Iterable[str]) -> str:
    """Hash of path, size and mtime for every source file under root.

    Changes whenever a source file is added, removed or modified.
    """
    digest = hashlib.sha1()
    for rel in sorted(set(relative_paths)):
        try:
            stat = (root / rel).stat()
            digest.update(f"{rel}:{stat.st_size}:{stat.st_mtime_ns}\n".encode("utf-8"))
        except OSError:
            digest.update(f"{rel}:missing\n".encode("utf-8"))
    return digest.hexdigest()


def fallback_module_name(relative_path: str, root_name: str) -> str:
    parts = Path(relative_path).parts
    if len(parts) >= 2:
        return "/".join(parts[:-1])
    return root_name or "root"


def is_within_root(root: Path, relative_path: str) -> bool:
    """True when relative_path resolves to root or somewhere below it."""
    base = root.resolve()
    target = (base / relative_path).resolve()
    return target == base or base in target.parents
