"""Generate the /init script run as PID 1 inside the test initramfs.

The script insmods and rmmods every discovered module once as a boot-time
smoke test, installs /bin wrappers for every busybox applet, prints a
banner and finally execs an interactive shell.
"""

import os
from dataclasses import dataclass

from initramfs_manifest import module_target

HEADER = ("#!/bin/sh", "")

# Applets are listed by the guest's busybox at boot, not baked in here.
TRAILER = (
    "echo QEMU entrypoint",
    "",
    "# Install busybox command aliases",
    "/bin/busybox --list | while read -r cmd; do",
    '\toutpath="/bin/$cmd"',
    '\tif [ -e "$outpath" ]; then',
    "\t\tcontinue",
    "\tfi",
    "",
    '\tprintf \'#!/bin/sh\\nexec /bin/busybox %s "$@"\\n\' "$cmd" > "$outpath"',
    '\t/bin/busybox chmod +x "$outpath"',
    "done",
    "",
    "echo Kernel version: $(uname -r)",
    "echo \"'ctrl-a x' to exit. Modules are located at '/*.ko'.\"",
    "",
)


@dataclass(frozen=True)
class ModuleSmokeTest:
    """Load then immediately unload one module."""
    path: str

    def render(self):
        return (
            f"busybox insmod {self.path}",
            f"busybox rmmod {self.path}",
            "",
        )


@dataclass(frozen=True)
class ExecShell:
    """Replace the init process with a shell.  Never returns."""
    shell: str = "/bin/sh"

    def render(self):
        return (f"exec {self.shell}",)


@dataclass(frozen=True)
class InitScript:
    """header, smoke tests, trailer, then exactly one terminal exec."""
    smoke_tests: tuple
    header: tuple = HEADER
    trailer: tuple = TRAILER
    final: ExecShell = ExecShell()

    @property
    def load_unload_lines(self):
        return [line for t in self.smoke_tests for line in t.render() if line]


def build_init_script(artifacts):
    """Build the InitScript for *artifacts*, in the order given.

    Modules are referenced by the path the manifest installs them at
    (/rust_foo.ko), not by their build-tree path, which does not exist
    inside the guest.
    """
    return InitScript(
        smoke_tests=tuple(ModuleSmokeTest(module_target(a)) for a in artifacts),
    )


def render_init_script(script):
    lines = list(script.header)
    for test in script.smoke_tests:
        lines.extend(test.render())
    lines.extend(script.trailer)
    lines.extend(script.final.render())
    return "\n".join(lines) + "\n"


def write_init_script(path, script):
    with open(path, "w") as f:
        f.write(render_init_script(script))
    os.chmod(path, 0o755)
    print(f"Wrote init script: {path} "
          f"({len(script.load_unload_lines)} insmod/rmmod line(s))")
