import os
import shutil
from pathlib import Path


def preserve_mtime(source: Path, target: Path) -> None:
    """Sets target's access and modification times to source's."""
    stat = source.stat()
    os.utime(target, ns=(stat.st_atime_ns, stat.st_mtime_ns))


def copy_preserving_mtime(source: Path, target: Path) -> int:
    """Copies source byte-for-byte to target with its mtime; returns the copied size."""
    target.parent.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(source, target)
    preserve_mtime(source, target)
    return target.stat().st_size
