"""Generate the gen_init_cpio manifest describing the test initramfs.

The manifest is the input format of the kernel's usr/gen_init_cpio:

    dir   <name> <mode> <uid> <gid>
    file  <name> <location> <mode> <uid> <gid>
    slink <name> <target> <mode> <uid> <gid>

It holds a fixed prelude (base directories, busybox, /bin/sh, /init) and
one entry per discovered module, installed flat at the root of the image.
"""

import posixpath
from collections import defaultdict
from dataclasses import dataclass

from _errors import ManifestError

EXEC_MODE = 0o755
ROOT_UID = 0
ROOT_GID = 0


@dataclass(frozen=True)
class Directory:
    path: str
    mode: int = EXEC_MODE
    uid: int = ROOT_UID
    gid: int = ROOT_GID

    def render(self):
        return f"dir {self.path} {self.mode:04o} {self.uid} {self.gid}"


@dataclass(frozen=True)
class RegularFile:
    path: str
    source: str
    mode: int = EXEC_MODE
    uid: int = ROOT_UID
    gid: int = ROOT_GID

    def render(self):
        return f"file {self.path} {self.source} {self.mode:04o} {self.uid} {self.gid}"


@dataclass(frozen=True)
class SymbolicLink:
    path: str
    target: str
    mode: int = EXEC_MODE
    uid: int = ROOT_UID
    gid: int = ROOT_GID

    def render(self):
        return f"slink {self.path} {self.target} {self.mode:04o} {self.uid} {self.gid}"


@dataclass(frozen=True)
class Manifest:
    """Prelude entries followed by one RegularFile per module."""
    prelude: tuple
    modules: tuple

    @property
    def entries(self):
        return self.prelude + self.modules

    def validate(self):
        """Raise ManifestError if any invariant of the image layout is broken."""
        collisions = find_collisions(self.entries)
        if collisions:
            details = "; ".join(
                f"{path} <- {', '.join(sources)}"
                for path, sources in sorted(collisions.items())
            )
            raise ManifestError(f"duplicate target path(s) in manifest: {details}")

        for entry in self.entries:
            for field in _path_fields(entry):
                if not field or any(c.isspace() for c in field):
                    raise ManifestError(
                        f"{entry.render()!r}: path {field!r} is empty or contains whitespace"
                    )

        dirs = {e.path for e in self.entries if isinstance(e, Directory)}
        for entry in self.entries:
            if isinstance(entry, Directory):
                continue
            parent = posixpath.dirname(entry.path)
            if parent != "/" and parent not in dirs:
                raise ManifestError(
                    f"{entry.path}: parent directory {parent} has no dir entry"
                )
        return self


def _path_fields(entry):
    """Paths an entry writes as single manifest fields."""
    if isinstance(entry, RegularFile):
        return (entry.path, entry.source)
    if isinstance(entry, SymbolicLink):
        return (entry.path, entry.target)
    return (entry.path,)


def _describe(entry):
    if isinstance(entry, RegularFile):
        return entry.source
    if isinstance(entry, SymbolicLink):
        return f"-> {entry.target}"
    return "(dir)"


def find_collisions(entries):
    """Return {target path: [sources]} for every path claimed more than once."""
    claims = defaultdict(list)
    for entry in entries:
        claims[entry.path].append(_describe(entry))
    return {path: sources for path, sources in claims.items() if len(sources) > 1}


def prelude_entries(config):
    """The fixed part of every manifest, in emission order."""
    return (
        Directory("/bin"),
        Directory("/sys"),
        Directory("/dev"),
        RegularFile("/bin/busybox", str(config.busybox_path)),
        SymbolicLink("/bin/sh", "/bin/busybox"),
        RegularFile("/init", str(config.init_script_path)),
    )


def module_target(artifact):
    """Where a module lands inside the image."""
    return "/" + artifact.name


def build_manifest(artifacts, config):
    """Build and validate the manifest for *artifacts*.

    Modules are flattened to ``/<basename>``; two modules sharing a base name
    raise ManifestError instead of producing an ambiguous image.
    """
    modules = tuple(
        RegularFile(module_target(a), a.path) for a in artifacts
    )
    return Manifest(prelude=prelude_entries(config), modules=modules).validate()


def render_manifest(manifest):
    lines = [e.render() for e in manifest.prelude]
    lines.append("")
    lines.extend(e.render() for e in manifest.modules)
    return "\n".join(lines) + "\n"


def write_manifest(path, manifest):
    with open(path, "w") as f:
        f.write(render_manifest(manifest))
    print(f"Wrote manifest: {path} ({len(manifest.modules)} module(s))")
