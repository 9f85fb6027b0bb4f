from __future__ import annotations

import datetime as dt
import posixpath
import shutil
from pathlib import Path, PurePosixPath

from .errors import StructuralError


def parse_bool(value: object) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "y", "on"}
    return False


def parse_int(value: object, default: int) -> int:
    if value is None:
        return default
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except ValueError:
        return default


def join_url(base: str, path: str) -> str:
    base = base.rstrip("/")
    path = path.lstrip("/")
    if not path:
        return base or "/"
    return f"{base}/{path}"


def iso_date(value: dt.date) -> str:
    if not isinstance(value, dt.datetime):
        value = dt.datetime.combine(value, dt.time())
    value = value.replace(tzinfo=dt.timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%SZ")


def relative_url(page: PurePosixPath, target: PurePosixPath) -> str:
    """Link from the output page ``page`` to ``target``, both relative to the output root."""
    start = page.parent.as_posix() or "."
    return posixpath.relpath(target.as_posix(), start)


def directory_url(page: PurePosixPath) -> str:
    """Public URL of a page: ``blog/hello/index.html`` is served as ``blog/hello/``."""
    if page.name.startswith("index."):
        parent = page.parent.as_posix()
        return "" if parent == "." else f"{parent}/"
    return page.as_posix()


def resolve_source_path(root: Path, base_dir: Path, value: str) -> Path:
    """Resolve a path written in content: ``/x`` is relative to the content root, ``x`` to ``base_dir``."""
    if value.startswith("/"):
        return root / value.lstrip("/")
    return base_dir / value


def clean_output_dir(output_dir: Path, project_root: Path) -> None:
    if not output_dir.exists():
        return
    output_resolved = output_dir.resolve()
    root_resolved = project_root.resolve()
    if output_resolved == root_resolved:
        raise StructuralError("Refusing to clean project root.", output_dir)
    if not output_resolved.is_relative_to(root_resolved):
        raise StructuralError("Refusing to clean output directory outside project root.", output_dir)
    shutil.rmtree(output_dir)
