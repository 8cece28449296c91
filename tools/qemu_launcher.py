"""Boot the built kernel and test initramfs under QEMU, and attach gdb.

The serial console is on stdio, so the guest's shell is interactive in the
calling terminal.  ``ctrl-a x`` quits QEMU.
"""

import multiprocessing
import os
from dataclasses import dataclass

from _env import run
from _errors import PreconditionError, UsageError

DEBUG_FLAGS = ("--debug", "--gdb")
# -s: gdbstub on tcp::1234, -S: halt the CPU until gdb continues it.
QEMU_DEBUG_ARGS = ("-s", "-S")
GDB_REMOTE = "localhost:1234"

USAGE = """\
Usage:
kdev run-qemu [OPTIONS]

OPTIONS:
  --debug: run qemu with -s -S to allow attaching a debugger
"""


@dataclass(frozen=True)
class EmulatorOptions:
    debug: bool = False


def parse_options(tokens):
    """Scan option tokens; the first unknown one raises UsageError."""
    debug = False
    for token in tokens:
        if token in DEBUG_FLAGS:
            debug = True
        else:
            raise UsageError(USAGE)
    return EmulatorOptions(debug=debug)


def build_qemu_cmd(config, options, cpus=None):
    """Return the full QEMU command line for *options*."""
    cmd = [
        config.qemu,
        "-kernel", str(config.kernel_image),
        "-initrd", str(config.initramfs_path),
        "-M", "pc",
        "-m", "4G",
        "-cpu", "Cascadelake-Server",
        "-smp", str(cpus or multiprocessing.cpu_count()),
        "-nographic",
        "-vga", "none",
        "-no-reboot",
        "-append", "console=ttyS0 nokaslr",
    ]
    if options.debug:
        cmd.extend(QEMU_DEBUG_ARGS)
    return cmd


def run_qemu(config, tokens=()):
    """Parse *tokens* and boot QEMU in the foreground until it exits."""
    options = parse_options(tokens)
    for required in (config.kernel_image, config.initramfs_path):
        if not os.path.isfile(required):
            raise PreconditionError(f"not found: {required}")
    if options.debug:
        print(f"QEMU will wait for a debugger on {GDB_REMOTE} (kdev debug)")
    run(build_qemu_cmd(config, options))


def gdb_cmd(config, extra_args=()):
    return [
        "gdb", str(config.vmlinux),
        "-ex", f"target remote {GDB_REMOTE}",
        *extra_args,
    ]


def attach_debugger(config, extra_args=()):
    """Attach gdb to a QEMU started with --debug."""
    if not os.path.isfile(config.vmlinux):
        raise PreconditionError(f"vmlinux not found: {config.vmlinux}")
    run(gdb_cmd(config, extra_args))
