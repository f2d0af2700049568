from __future__ import annotations

import inspect
import logging
import os.path
import pathlib
import shutil
import tarfile
import typing
from urllib.parse import unquote, urlparse

from .request_session import session

logger = logging.getLogger(__name__)


def download_url(
    *,
    destination_dir: pathlib.Path,
    url: str,
    destination_filename: str | None = None,
) -> pathlib.Path:
    """Download ``url`` into ``destination_dir`` and return the file path

    An existing file is replaced: every run fetches a fresh copy. The
    content is written to a temporary file first, so a failed download
    never leaves a partial file behind under the final name.
    """
    basename = (
        destination_filename
        if destination_filename
        else unquote(os.path.basename(urlparse(url).path))
    )
    if not basename:
        raise ValueError(f"cannot derive a file name from {url}")
    outfile = pathlib.Path(destination_dir) / basename
    outfile.parent.mkdir(parents=True, exist_ok=True)

    # Create a temporary file to avoid partial downloads
    temp_file = outfile.with_suffix(outfile.suffix + ".tmp")

    logger.debug(f"reading from {url}")
    try:
        with session.get(url, stream=True) as r:
            r.raise_for_status()
            with open(temp_file, "wb") as f:
                logger.debug("writing to %s", temp_file)
                for chunk in r.iter_content(chunk_size=64 * 1024):
                    if chunk:  # Filter out keep-alive chunks
                        f.write(chunk)
        # Only move to final location if download completed successfully
        temp_file.replace(outfile)
    except Exception:
        # Clean up partial file on any failure
        if temp_file.exists():
            temp_file.unlink()
        raise

    logger.info("saved %s", outfile)
    return outfile


def _takes_arg(f: typing.Callable, arg_name: str) -> bool:
    sig = inspect.signature(f)
    return arg_name in sig.parameters


def unpack_source(
    source_filename: pathlib.Path,
    unpack_dir: pathlib.Path,
    expected_name: str,
) -> pathlib.Path:
    """Unpack a source tarball and return its root directory

    ``unpack_dir`` is removed first so a previous run cannot leak into
    this one. The single top-level directory of the archive is renamed to
    ``expected_name``.
    """
    if unpack_dir.exists():
        logger.debug("cleaning up %s", unpack_dir)
        shutil.rmtree(unpack_dir)

    logger.debug("unpacking %s to %s", source_filename, unpack_dir)
    name = str(source_filename)
    if not name.endswith((".tar.gz", ".tgz", ".tar.bz2", ".tar.xz", ".tar")):
        raise ValueError(f"Do not know how to unpack source archive {source_filename}")
    with tarfile.open(source_filename, "r") as t:
        if t.next() is None:
            raise tarfile.TarError(f"Empty tar file encountered: {source_filename}")
        if _takes_arg(t.extractall, "filter"):
            t.extractall(unpack_dir, filter="data")
        else:
            logger.debug('unpacking without filter="data"')
            t.extractall(unpack_dir)

    # GitHub names the root directory after the repository and ref (e.g.
    # kcov-master, kcov-43), so look for what was created and give it a
    # predictable name.
    entries = list(unpack_dir.iterdir())
    if len(entries) != 1 or not entries[0].is_dir():
        raise ValueError(
            f"expected a single top-level directory in {source_filename}, "
            f"found {sorted(e.name for e in entries)}"
        )
    unpacked_root_dir = entries[0]
    if unpacked_root_dir.name != expected_name:
        desired_name = unpacked_root_dir.parent / expected_name
        try:
            shutil.move(str(unpacked_root_dir), str(desired_name))
        except Exception as err:
            raise Exception(
                f"Could not rename {unpacked_root_dir.name} to {desired_name}: {err}"
            ) from err
        unpacked_root_dir = desired_name

    return unpacked_root_dir
