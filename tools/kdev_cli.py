#!/usr/bin/env python3
"""kdev: build a Rust-enabled kernel and boot it in QEMU with a test initramfs.

    kdev build                 # make with LLVM=y CONFIG_RUST=y ...
    kdev run-qemu              # build, assemble initramfs, boot
    kdev run-qemu --debug      # same, halted for `kdev debug`
    kdev debug                 # attach gdb to the halted guest

Settings come from KERNEL_* environment variables or kdev.ini.
"""

import platform

import click

import busybox_fetch
import initramfs_builder
import kernel_build
import qemu_launcher
from _errors import KdevError, UsageError
from kdev_config import load_config
from module_locator import DEFAULT_PATTERN

_PASSTHROUGH_ARGS = {"ignore_unknown_options": True, "allow_extra_args": False}


class _Group(click.Group):
    """Report KdevError as ``error: ...`` instead of a traceback."""

    def invoke(self, ctx):
        try:
            return super().invoke(ctx)
        except UsageError as e:
            click.echo(str(e), err=True)
            raise SystemExit(2)
        except KdevError as e:
            click.echo(f"error: {e}", err=True)
            raise SystemExit(1)


@click.group(cls=_Group, invoke_without_command=True)
@click.option("--config", "config_file", type=click.Path(dir_okay=False),
              default=None, help="INI file with a [kernel] section (default: ./kdev.ini)")
@click.pass_context
def main(ctx, config_file):
    """Kernel build-and-boot helper."""
    ctx.obj = {"config": load_config(config_file)}
    if ctx.invoked_subcommand is None:
        ctx.invoke(info)
        click.echo(ctx.get_help())


def _config():
    return click.get_current_context().find_root().obj["config"]


@main.command()
def info():
    """Print host and configuration summary."""
    config = _config()
    click.echo(f"os: {platform.system().lower()} arch: {platform.machine()}")
    click.echo(f"source dir: {config.source_dir}")
    click.echo(f"stash dir:  {config.stash_dir}")
    click.echo(f"qemu:       {config.qemu}")
    click.echo(f"make flags: {' '.join(config.make_flags)}")
    click.echo(f"busybox:    {config.busybox_version}")


@main.command()
def rustavailable():
    """Check the Rust toolchain."""
    kernel_build.rustavailable(_config())


@main.command("rust-analyzer", context_settings=_PASSTHROUGH_ARGS)
@click.argument("extra_args", nargs=-1, type=click.UNPROCESSED)
def rust_analyzer(extra_args):
    """Generate rust-project.json."""
    kernel_build.rust_analyzer(_config(), extra_args)


@main.command(context_settings=_PASSTHROUGH_ARGS)
@click.argument("extra_args", nargs=-1, type=click.UNPROCESSED)
def menuconfig(extra_args):
    """Shortcut for `make menuconfig`."""
    kernel_build.menuconfig(_config(), extra_args)


@main.command(context_settings=_PASSTHROUGH_ARGS)
@click.argument("extra_args", nargs=-1, type=click.UNPROCESSED)
def defconfig(extra_args):
    """Shortcut for `make defconfig`."""
    kernel_build.defconfig(_config(), extra_args)


@main.command(context_settings=_PASSTHROUGH_ARGS)
@click.option("-j", "--jobs", type=int, default=None, help="Parallel jobs (default: CPU count)")
@click.argument("extra_args", nargs=-1, type=click.UNPROCESSED)
def build(jobs, extra_args):
    """Build the kernel."""
    kernel_build.build(_config(), extra_args, jobs=jobs)


@main.command(context_settings=_PASSTHROUGH_ARGS)
@click.option("-j", "--jobs", type=int, default=None, help="Parallel jobs (default: CPU count)")
@click.argument("extra_args", nargs=-1, type=click.UNPROCESSED)
def clippy(jobs, extra_args):
    """Build with clippy."""
    kernel_build.clippy(_config(), extra_args, jobs=jobs)


@main.command("make", context_settings=_PASSTHROUGH_ARGS)
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
def make_(args):
    """Run make in the source tree."""
    kernel_build.passthrough(_config(), args)


@main.command()
def clean():
    """git clean ignored files, keeping .config and the stash dir."""
    kernel_build.clean(_config())


@main.command()
def fmt():
    """Run rustfmt."""
    kernel_build.fmt(_config())


@main.command("rustup-override")
def rustup_override():
    """Pin the toolchain for the source directory."""
    kernel_build.rustup_override(_config())


@main.command("get-busybox")
def get_busybox():
    """Download busybox into the stash dir."""
    busybox_fetch.fetch_busybox(_config())


def _setup(config, no_build, pattern):
    if not no_build:
        kernel_build.build(config)
    return initramfs_builder.setup_initramfs(config, pattern=pattern)


def _build_image(config, no_build, pattern):
    _setup(config, no_build, pattern)
    busybox_fetch.fetch_busybox(config)
    return initramfs_builder.build_initramfs(config)


_no_build = click.option("--no-build", is_flag=True,
                         help="Skip the kernel build and use what is on disk")
_pattern = click.option("--pattern", default=DEFAULT_PATTERN, show_default=True,
                        help="Only modules whose path contains this string")


@main.command("setup-initramfs")
@_no_build
@_pattern
def setup_initramfs(no_build, pattern):
    """Write the initramfs manifest and init script."""
    _setup(_config(), no_build, pattern)


@main.command("build-initramfs")
@_no_build
@_pattern
def build_initramfs(no_build, pattern):
    """Create the initramfs image."""
    _build_image(_config(), no_build, pattern)


@main.command("run-qemu", context_settings=_PASSTHROUGH_ARGS)
@_no_build
@click.argument("options", nargs=-1, type=click.UNPROCESSED)
def run_qemu(no_build, options):
    """Boot the built kernel in QEMU.  OPTIONS: --debug"""
    config = _config()
    # Reject bad options before spending time on a build.
    qemu_launcher.parse_options(options)
    _build_image(config, no_build, DEFAULT_PATTERN)
    qemu_launcher.run_qemu(config, options)


@main.command(context_settings=_PASSTHROUGH_ARGS)
@click.argument("debugger_args", nargs=-1, type=click.UNPROCESSED)
def debug(debugger_args):
    """Attach gdb to QEMU (`kdev run-qemu --debug` must be running)."""
    qemu_launcher.attach_debugger(_config(), debugger_args)


if __name__ == "__main__":
    main()
