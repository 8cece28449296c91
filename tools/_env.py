"""Shared environment sanitization for kernel dev helpers.

make, gen_init_cpio, qemu and gdb all run with an environment built here
rather than inheriting the caller's shell wholesale.  Stray CC/CFLAGS or
ARCH exports in a developer shell silently change what the kernel build
produces, so only a whitelist of functional vars is passed through and the
locale is pinned.  Kbuild settings (ARCH, O=, KCFLAGS...) belong in the
configured make_flags.
"""

import os
import subprocess

from _errors import ToolError

# Vars passed through from the host environment when present.
_PASSTHROUGH = frozenset({
    "PATH",
    "HOME", "USER", "LOGNAME",
    "TMPDIR", "TEMP", "TMP",
    "TERM", "COLORTERM", "DISPLAY",
    # Rust toolchain discovery for CONFIG_RUST builds.
    "RUSTUP_HOME", "CARGO_HOME", "RUSTUP_TOOLCHAIN",
    # LLVM=y resolves clang/ld.lld through these when set.
    "LLVM_SYS_PATH", "LIBCLANG_PATH",
})

# Vars pinned to fixed values for determinism.
_DETERMINISM_PINS = {
    "LC_ALL": "C",
    "LANG": "C",
}


def clean_env(environ=None):
    """Return a clean env dict for subprocess env= parameter.

    Copies only whitelisted vars from *environ* (default: os.environ), then
    applies determinism pins.  Callers layer helper-specific vars on top.
    """
    if environ is None:
        environ = os.environ
    env = {}
    for key in _PASSTHROUGH:
        val = environ.get(key)
        if val is not None:
            env[key] = val
    env.update(_DETERMINISM_PINS)
    return env


def run(cmd, cwd=None, stdout=None, env=None):
    """Echo and run a command with a clean env; raise ToolError on failure."""
    cmd = [str(c) for c in cmd]
    print(f"  + {' '.join(cmd)}")
    result = subprocess.run(cmd, cwd=cwd, stdout=stdout,
                            env=env if env is not None else clean_env())
    if result.returncode != 0:
        raise ToolError(cmd, result.returncode)
    return result
