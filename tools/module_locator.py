"""Locate compiled loadable kernel modules in a build tree."""

import os
from dataclasses import dataclass

from _errors import PreconditionError

MODULE_SUFFIX = ".ko"
DEFAULT_PATTERN = "rust"


@dataclass(frozen=True, order=True)
class ModuleArtifact:
    """A compiled module found on disk.  Ordered and identified by path."""
    path: str
    name: str

    @classmethod
    def from_path(cls, path):
        path = os.path.abspath(path)
        return cls(path=path, name=os.path.basename(path))


def find_modules(root, pattern=DEFAULT_PATTERN, ignore_case=False):
    """Return every ``*.ko`` file under *root* whose path contains *pattern*.

    *pattern* is matched against the path relative to *root*, so a checkout
    at ~/src/rust-for-linux does not match every module in the tree.  The
    result is sorted by path so the manifest and the init script see the
    modules in the same order on every run.  Symlinked directories are not
    followed.
    """
    root = os.path.abspath(root)
    if not os.path.isdir(root):
        raise PreconditionError(f"build tree not found: {root}")

    needle = pattern.lower() if ignore_case else pattern
    found = []
    for dirpath, _dirnames, filenames in os.walk(root):
        for fname in filenames:
            if not fname.endswith(MODULE_SUFFIX):
                continue
            path = os.path.join(dirpath, fname)
            if not os.path.isfile(path):
                continue
            rel = os.path.relpath(path, root)
            haystack = rel.lower() if ignore_case else rel
            if needle in haystack:
                found.append(ModuleArtifact.from_path(path))
    return tuple(sorted(found))
