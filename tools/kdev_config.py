"""Configuration for the kdev helpers.

Values are resolved in order: environment variable, ``[kernel]`` section of
an INI file (``kdev.ini`` in the working directory unless another path is
given), built-in default.  The result is a frozen KdevConfig that every
helper takes as an argument.
"""

import configparser
import os
import shlex
from dataclasses import dataclass
from pathlib import Path

from _errors import ConfigError

DEFAULT_CONFIG_FILE = "kdev.ini"
DEFAULT_QEMU = "qemu-system-x86_64"
DEFAULT_BUSYBOX_VERSION = "1.35.0-x86_64-linux-musl"
DEFAULT_MAKE_FLAGS = (
    "LLVM=y",
    "CONFIG_MODULES=y",
    "CONFIG_RUST=y",
    "CONFIG_SAMPLES=y",
    "CONFIG_SAMPLES_RUST=y",
)

# config key -> environment variable
_ENV_VARS = {
    "source_dir": "KERNEL_SOURCE_DIR",
    "stash_dir": "KERNEL_STASH_DIR",
    "qemu": "KERNEL_QEMU",
    "make_flags": "KERNEL_DEFAULT_MAKE_FLAGS",
    "busybox_version": "KERNEL_BUSYBOX",
}


@dataclass(frozen=True)
class KdevConfig:
    """Resolved paths and tool names for one kdev run."""
    source_dir: Path
    stash_dir: Path
    qemu: str = DEFAULT_QEMU
    make_flags: tuple[str, ...] = DEFAULT_MAKE_FLAGS
    busybox_version: str = DEFAULT_BUSYBOX_VERSION

    @property
    def busybox_path(self) -> Path:
        return self.stash_dir / "busybox"

    @property
    def manifest_path(self) -> Path:
        return self.stash_dir / "qemu-initramfs.desc"

    @property
    def init_script_path(self) -> Path:
        return self.stash_dir / "qemu-init.sh"

    @property
    def initramfs_path(self) -> Path:
        return self.stash_dir / "qemu-initramfs.img"

    @property
    def kernel_image(self) -> Path:
        return self.source_dir / "arch" / "x86" / "boot" / "bzImage"

    @property
    def vmlinux(self) -> Path:
        return self.source_dir / "vmlinux"

    @property
    def gen_init_cpio(self) -> Path:
        return self.source_dir / "usr" / "gen_init_cpio"

    @property
    def busybox_url(self) -> str:
        return ("https://www.busybox.net/downloads/binaries/"
                f"{self.busybox_version}/busybox")


def read_config_file(path):
    """Return the ``[kernel]`` section of an INI file as a dict.

    A missing file yields an empty dict; a malformed one raises ConfigError.
    """
    path = Path(path)
    if not path.is_file():
        return {}
    # make_flags may carry literal % (KCFLAGS=-w%), so no interpolation.
    parser = configparser.ConfigParser(interpolation=None)
    try:
        parser.read(path)
    except configparser.Error as e:
        raise ConfigError(f"failed to parse {path}: {e}") from e
    if not parser.has_section("kernel"):
        return {}
    unknown = set(parser["kernel"]) - set(_ENV_VARS)
    if unknown:
        raise ConfigError(
            f"{path}: unknown key(s) in [kernel]: {', '.join(sorted(unknown))}"
        )
    return dict(parser["kernel"])


def load_config(path=None, environ=None, cwd=None) -> KdevConfig:
    """Build a KdevConfig from the environment, a config file and defaults."""
    if environ is None:
        environ = os.environ
    cwd = Path(cwd) if cwd is not None else Path.cwd()
    config_path = Path(path) if path is not None else cwd / DEFAULT_CONFIG_FILE
    if path is not None and not config_path.is_file():
        raise ConfigError(f"config file not found: {config_path}")

    values = read_config_file(config_path)
    for key, var in _ENV_VARS.items():
        if environ.get(var):
            values[key] = environ[var]

    source_dir = (cwd / values.get("source_dir", "linux")).resolve()
    # The stash lives in the gitignored `linux` dir inside the source tree
    # unless pointed elsewhere.
    stash_dir = (cwd / values.get("stash_dir", source_dir / "linux")).resolve()

    make_flags = DEFAULT_MAKE_FLAGS
    if "make_flags" in values:
        try:
            make_flags = tuple(shlex.split(values["make_flags"]))
        except ValueError as e:
            raise ConfigError(f"bad make_flags {values['make_flags']!r}: {e}") from e

    return KdevConfig(
        source_dir=source_dir,
        stash_dir=stash_dir,
        qemu=values.get("qemu", DEFAULT_QEMU),
        make_flags=make_flags,
        busybox_version=values.get("busybox_version", DEFAULT_BUSYBOX_VERSION),
    )
