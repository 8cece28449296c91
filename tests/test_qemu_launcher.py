"""Unit tests for QEMU option parsing and command construction."""
from __future__ import annotations

import subprocess
import sys
from pathlib import Path

import pytest

_REPO = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(_REPO / "tools"))

import _env
import qemu_launcher
from _errors import PreconditionError, ToolError, UsageError
from qemu_launcher import (
    EmulatorOptions,
    build_qemu_cmd,
    gdb_cmd,
    parse_options,
)


@pytest.fixture
def calls(monkeypatch):
    """Record subprocess.run calls made through _env.run."""
    recorded = []

    def fake_run(cmd, **kwargs):
        recorded.append(cmd)
        return subprocess.CompletedProcess(cmd, 0)

    monkeypatch.setattr(_env.subprocess, "run", fake_run)
    return recorded


def _boot_files(config):
    config.kernel_image.parent.mkdir(parents=True, exist_ok=True)
    config.kernel_image.write_text("bzImage")
    config.stash_dir.mkdir(parents=True, exist_ok=True)
    config.initramfs_path.write_text("cpio")


# ---------------------------------------------------------------------------
# parse_options
# ---------------------------------------------------------------------------

def test_no_options():
    assert parse_options([]) == EmulatorOptions(debug=False)


def test_debug_flag():
    assert parse_options(["--debug"]).debug is True


def test_legacy_gdb_spelling():
    assert parse_options(["--gdb"]).debug is True


def test_repeated_flag_is_idempotent():
    assert parse_options(["--debug", "--debug"]) == EmulatorOptions(debug=True)


@pytest.mark.parametrize("tokens", [
    ["--bogus"],
    ["--debug", "--bogus"],
    ["--bogus", "--debug"],
    ["debug"],
    ["-s"],
    [""],
])
def test_unknown_token_raises_usage(tokens):
    with pytest.raises(UsageError) as exc:
        parse_options(tokens)
    assert "Usage:" in str(exc.value)
    assert "--debug" in str(exc.value)


# ---------------------------------------------------------------------------
# build_qemu_cmd
# ---------------------------------------------------------------------------

def test_base_command(config):
    cmd = build_qemu_cmd(config, EmulatorOptions(), cpus=4)
    assert cmd == [
        "qemu-system-x86_64",
        "-kernel", str(config.source_dir / "arch/x86/boot/bzImage"),
        "-initrd", str(config.stash_dir / "qemu-initramfs.img"),
        "-M", "pc",
        "-m", "4G",
        "-cpu", "Cascadelake-Server",
        "-smp", "4",
        "-nographic",
        "-vga", "none",
        "-no-reboot",
        "-append", "console=ttyS0 nokaslr",
    ]


def test_debug_adds_exactly_two_flags(config):
    base = build_qemu_cmd(config, EmulatorOptions(), cpus=2)
    debug = build_qemu_cmd(config, EmulatorOptions(debug=True), cpus=2)
    assert debug == base + ["-s", "-S"]


def test_smp_defaults_to_cpu_count(config, monkeypatch):
    monkeypatch.setattr(qemu_launcher.multiprocessing, "cpu_count", lambda: 12)
    cmd = build_qemu_cmd(config, EmulatorOptions())
    assert cmd[cmd.index("-smp") + 1] == "12"


def test_custom_qemu_binary(config):
    from dataclasses import replace
    cmd = build_qemu_cmd(replace(config, qemu="/opt/qemu/bin/qemu-system-x86_64"),
                         EmulatorOptions(), cpus=1)
    assert cmd[0] == "/opt/qemu/bin/qemu-system-x86_64"


# ---------------------------------------------------------------------------
# run_qemu / attach_debugger
# ---------------------------------------------------------------------------

def test_run_qemu_launches(config, calls):
    _boot_files(config)
    qemu_launcher.run_qemu(config, ["--debug"])
    assert len(calls) == 1
    assert calls[0][0] == "qemu-system-x86_64"
    assert calls[0][-2:] == ["-s", "-S"]


def test_run_qemu_bad_option_launches_nothing(config, calls):
    _boot_files(config)
    with pytest.raises(UsageError):
        qemu_launcher.run_qemu(config, ["--debug", "--nope"])
    assert calls == []


def test_run_qemu_missing_image(config, calls):
    with pytest.raises(PreconditionError):
        qemu_launcher.run_qemu(config, [])
    assert calls == []


def test_run_qemu_failure_propagates(config, monkeypatch):
    _boot_files(config)
    monkeypatch.setattr(_env.subprocess, "run",
                        lambda cmd, **kw: subprocess.CompletedProcess(cmd, 3))
    with pytest.raises(ToolError) as exc:
        qemu_launcher.run_qemu(config, [])
    assert exc.value.returncode == 3


def test_gdb_cmd(config):
    assert gdb_cmd(config, ["-q"]) == [
        "gdb", str(config.source_dir / "vmlinux"),
        "-ex", "target remote localhost:1234",
        "-q",
    ]


def test_attach_debugger(config, calls):
    config.vmlinux.parent.mkdir(parents=True, exist_ok=True)
    config.vmlinux.write_text("elf")
    qemu_launcher.attach_debugger(config)
    assert calls == [gdb_cmd(config)]


def test_attach_debugger_needs_vmlinux(config, calls):
    with pytest.raises(PreconditionError, match="vmlinux"):
        qemu_launcher.attach_debugger(config)
