"""Error types shared by the kdev helpers.

Helpers raise; only kdev_cli turns these into ``error: ...`` output and an
exit status.
"""


class KdevError(Exception):
    """Base class for every failure that aborts a kdev run."""


class ConfigError(KdevError):
    """Configuration file could not be read or holds a bad value."""


class PreconditionError(KdevError):
    """A required input (source tree, binary, image) is missing."""


class ManifestError(KdevError):
    """An initramfs manifest violates its invariants."""


class UsageError(KdevError):
    """Unrecognized command-line option; the message is the usage text."""


class ToolError(KdevError):
    """An external tool exited non-zero."""

    def __init__(self, cmd, returncode):
        self.cmd = list(cmd)
        self.returncode = returncode
        super().__init__(
            f"command failed with exit code {returncode}: {' '.join(self.cmd)}"
        )
