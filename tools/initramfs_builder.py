"""Assemble the test initramfs from freshly built kernel modules.

setup_initramfs() writes the gen_init_cpio manifest and the /init script;
build_initramfs() feeds the manifest to the kernel tree's usr/gen_init_cpio
and captures the archive in the stash dir.
"""

import os

from _env import run
from _errors import PreconditionError
from init_script import build_init_script, write_init_script
from initramfs_manifest import build_manifest, write_manifest
from module_locator import DEFAULT_PATTERN, find_modules


def setup_initramfs(config, artifacts=None, pattern=DEFAULT_PATTERN):
    """Write manifest and init script for *artifacts* (located if None)."""
    os.makedirs(config.stash_dir, exist_ok=True)
    if artifacts is None:
        artifacts = find_modules(config.source_dir, pattern)
    for artifact in artifacts:
        print(f"  module: {artifact.path}")

    # Both outputs are built before either is written so a manifest
    # collision leaves no half-updated pair behind.
    manifest = build_manifest(artifacts, config)
    script = build_init_script(artifacts)
    write_manifest(config.manifest_path, manifest)
    write_init_script(config.init_script_path, script)
    return manifest, script


def build_initramfs(config):
    """Run gen_init_cpio on the manifest; return the image path."""
    gen = config.gen_init_cpio
    if not os.path.isfile(gen):
        raise PreconditionError(f"gen_init_cpio not found (build the kernel first): {gen}")
    for required in (config.manifest_path, config.init_script_path, config.busybox_path):
        if not os.path.isfile(required):
            raise PreconditionError(f"initramfs input missing: {required}")

    output = config.initramfs_path
    with open(output, "wb") as out:
        run([gen, config.manifest_path], stdout=out)

    size_kb = os.path.getsize(output) // 1024
    print(f"Created initramfs: {output} ({size_kb}K)")
    return output
