"""Download the prebuilt static busybox into the stash dir if it is absent."""

import os
import tempfile

import httpx
from tqdm import tqdm

from _errors import PreconditionError, ToolError


def fetch_busybox(config, client=None):
    """Ensure ``<stash>/busybox`` exists and is executable; return its path."""
    dest = config.busybox_path
    if dest.is_file():
        print("busybox found, skipping")
        return dest

    os.makedirs(config.stash_dir, exist_ok=True)
    url = config.busybox_url
    print(f"downloading busybox {config.busybox_version}...")

    own_client = client is None
    if own_client:
        client = httpx.Client(timeout=60, follow_redirects=True)
    try:
        _download(client, url, dest)
    finally:
        if own_client:
            client.close()

    if not dest.is_file():
        raise PreconditionError(f"busybox not found after download: {dest}")
    return dest


def _download(client, url, dest):
    """Stream *url* into *dest* atomically."""
    fd, tmp_path = tempfile.mkstemp(prefix=".busybox-", dir=dest.parent)
    try:
        with os.fdopen(fd, "wb") as out:
            try:
                with client.stream("GET", url) as response:
                    if response.status_code != 200:
                        raise ToolError(["GET", url], response.status_code)
                    total = int(response.headers.get("content-length", 0)) or None
                    with tqdm(total=total, unit="B", unit_scale=True,
                              desc="busybox") as bar:
                        for chunk in response.iter_bytes():
                            out.write(chunk)
                            bar.update(len(chunk))
            except httpx.HTTPError as e:
                raise ToolError(["GET", url], 1) from e
        os.chmod(tmp_path, 0o755)
        os.replace(tmp_path, dest)
    finally:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
