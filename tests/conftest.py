from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest

_REPO = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(_REPO / "tools"))

from kdev_config import KdevConfig  # noqa: E402


def _write(path: Path, content: str = "") -> Path:
    """Create a file (and parent dirs) with the given content."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    return path


def make_executable(path: Path, body: str) -> Path:
    """Write a /bin/sh script at *path* and mark it executable."""
    _write(path, "#!/bin/sh\n" + body)
    os.chmod(path, 0o755)
    return path


@pytest.fixture
def source_dir(tmp_path: Path) -> Path:
    """A fake kernel build tree with a handful of built modules."""
    src = tmp_path / "linux"
    _write(src / "samples" / "rust" / "rust_minimal.ko", "ko")
    _write(src / "samples" / "rust" / "rust_print.ko", "ko")
    _write(src / "samples" / "rust" / "rust_minimal.o", "obj")
    _write(src / "drivers" / "net" / "dummy.ko", "ko")
    _write(src / "drivers" / "block" / "rnull_mod.ko", "ko")
    return src


@pytest.fixture
def config(source_dir: Path) -> KdevConfig:
    return KdevConfig(source_dir=source_dir, stash_dir=source_dir / "linux")
