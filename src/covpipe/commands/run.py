import logging
import pathlib

import click

from .. import clickext, context, kcov, metrics, pipeline

logger = logging.getLogger(__name__)


@click.command()
@click.option(
    "--skip-build",
    default=False,
    is_flag=True,
    help="instrument the binaries of a previous build",
)
@click.option(
    "--skip-upload",
    default=False,
    is_flag=True,
    help="keep the coverage reports local, for example on a workstation",
)
@click.option(
    "--keep-going",
    default=False,
    is_flag=True,
    help="instrument every binary and report all kcov failures at the end",
)
@click.option(
    "--kcov",
    "kcov_executable",
    default=None,
    type=clickext.ClickPath(dir_okay=False),
    help="use this kcov instead of building it from source",
)
@click.pass_obj
def run(
    wkctx: context.WorkContext,
    skip_build: bool,
    skip_upload: bool,
    keep_going: bool,
    kcov_executable: pathlib.Path | None,
) -> None:
    """Build, test, instrument, upload, and clean up.

    Stops at the first failing command and exits with its return code.
    """
    clickext.require_artifact_prefix(wkctx)
    provisioner: kcov.Provisioner | None = None
    if kcov_executable is not None:
        provisioner = kcov.PreinstalledProvisioner(kcov_executable.absolute())
    try:
        pipeline.run_pipeline(
            wkctx,
            provisioner=provisioner,
            skip_build=skip_build,
            skip_upload=skip_upload,
            keep_going=keep_going,
        )
    finally:
        metrics.summarize(wkctx, "coverage pipeline")
