"""Drive the kernel's own make targets for a Rust-enabled LLVM build.

Each helper runs ``make -C <source_dir> <make_flags> ...`` in the
configured source tree.  Nothing here understands Kconfig; these are
shortcuts so the same flags are used for every invocation.
"""

import multiprocessing
import os
import subprocess

from _env import clean_env, run
from _errors import PreconditionError, ToolError


def _require_source(config):
    if not config.source_dir.is_dir():
        raise PreconditionError(f"source directory not found: {config.source_dir}")


def make_cmd(config, *args, jobs=None):
    """Return the make command line for *args* with the configured flags."""
    cmd = ["make", "-C", str(config.source_dir), *config.make_flags]
    if jobs:
        cmd.append(f"-j{jobs}")
    cmd.extend(args)
    return cmd


def rustavailable(config):
    """Check that the Rust toolchain satisfies the kernel's requirements."""
    _require_source(config)
    run(make_cmd(config, "rustavailable"))


def build(config, extra_args=(), jobs=None):
    """Build the kernel and modules (rustavailable first)."""
    rustavailable(config)
    run(make_cmd(config, *extra_args, jobs=jobs or multiprocessing.cpu_count()))
    print("Kernel build complete")


def clippy(config, extra_args=(), jobs=None):
    """Build with CLIPPY=y so Rust code is linted."""
    rustavailable(config)
    run(make_cmd(config, "CLIPPY=y", *extra_args,
                 jobs=jobs or multiprocessing.cpu_count()))


def fmt(config, jobs=None):
    _require_source(config)
    run(make_cmd(config, "rustfmt", jobs=jobs or multiprocessing.cpu_count()))


def rust_analyzer(config, extra_args=()):
    """Generate rust-project.json for rust-analyzer."""
    _require_source(config)
    run(make_cmd(config, "rust-analyzer", *extra_args))


def menuconfig(config, extra_args=()):
    rustavailable(config)
    run(make_cmd(config, "menuconfig", *extra_args))


def defconfig(config, extra_args=()):
    rustavailable(config)
    run(make_cmd(config, "defconfig", *extra_args))


def passthrough(config, args=()):
    """Plain make in the source tree, without the default flags."""
    _require_source(config)
    run(["make", "-C", str(config.source_dir), *args])


def clean(config):
    """Remove ignored files from the source tree.

    The stash dir, .config and rust-project.json survive.
    """
    _require_source(config)
    src = config.source_dir
    run([
        "git", "-C", str(src), "clean", "-dfX",
        "--exclude", _relative_exclude(config.stash_dir, src),
        "--exclude", ".config",
        "--exclude", "rust-project.json",
    ])


def _relative_exclude(path, root):
    try:
        return "/" + str(path.relative_to(root))
    except ValueError:
        return str(path)


def rustup_override(config):
    """Pin the source tree to the minimum rustc it supports, plus rust-src."""
    _require_source(config)
    src = str(config.source_dir)
    script = os.path.join(src, "scripts", "min-tool-version.sh")
    if not os.path.isfile(script):
        raise PreconditionError(f"min-tool-version.sh not found: {script}")

    env = clean_env()
    result = subprocess.run([script, "rustc"], cwd=src, env=env,
                            capture_output=True, text=True)
    if result.returncode != 0:
        raise ToolError([script, "rustc"], result.returncode)
    version = result.stdout.strip()
    print(f"Minimum rustc: {version}")

    run(["rustup", "override", "set", version], cwd=src)
    run(["rustup", "component", "add", "rust-src"], cwd=src)
    return version
