from __future__ import annotations

import logging
import os
import pathlib
import typing

from . import metrics, sources

if typing.TYPE_CHECKING:
    from . import context

logger = logging.getLogger(__name__)

UPLOADER_FILENAME = "codecov-uploader.sh"


def fetch_uploader(ctx: context.WorkContext) -> pathlib.Path:
    """Download the uploader script into the work directory"""
    url = ctx.settings.upload.uploader_url
    logger.info("fetching uploader from %s", url)
    if ctx.dry_run:
        return ctx.downloads_dir / UPLOADER_FILENAME
    return sources.download_url(
        destination_dir=ctx.downloads_dir,
        url=url,
        destination_filename=UPLOADER_FILENAME,
    )


def uploader_command(ctx: context.WorkContext, script: pathlib.Path) -> list[str]:
    return [
        "bash",
        os.fspath(script),
        "-s",
        os.fspath(ctx.coverage_dir),
        *ctx.settings.upload.extra_args,
    ]


@metrics.timeit(description="upload coverage")
def upload_coverage(*, ctx: context.WorkContext) -> None:
    """Send the coverage reports to the coverage service

    The uploader finds the report directories below the coverage root
    and authenticates with the token resolved at startup, if any.
    """
    script = fetch_uploader(ctx)
    extra_environ: dict[str, str] = {}
    if ctx.upload_token:
        extra_environ["CODECOV_TOKEN"] = ctx.upload_token
    else:
        logger.debug("no upload token, relying on tokenless upload")
    ctx.runner.run(
        uploader_command(ctx, script),
        cwd=ctx.project_dir,
        extra_environ=extra_environ,
    )
    print("Uploaded code coverage")
