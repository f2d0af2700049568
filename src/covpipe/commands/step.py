import logging
import pathlib

import click

from .. import (
    build_test,
    cleanup,
    clickext,
    context,
    instrument,
    kcov,
    log,
    pipeline,
    upload,
)

logger = logging.getLogger(__name__)


@click.command()
@click.pass_obj
def build(wkctx: context.WorkContext) -> None:
    """Build the project and run its tests."""
    with log.stage_context(pipeline.Stage.BUILD):
        build_test.build_and_test(ctx=wkctx)


@click.command()
@click.pass_obj
def install_kcov(wkctx: context.WorkContext) -> None:
    """Download, build, and install kcov into the work directory.

    Prints the path of the installed binary.
    """
    with log.stage_context(pipeline.Stage.BOOTSTRAP):
        installed = kcov.bootstrap_kcov(ctx=wkctx)
    print(installed)


@click.command("instrument")
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
def instrument_cmd(
    wkctx: context.WorkContext,
    keep_going: bool,
    kcov_executable: pathlib.Path | None,
) -> None:
    """Run kcov against every test binary."""
    clickext.require_artifact_prefix(wkctx)
    if kcov_executable is not None:
        provisioner: kcov.Provisioner = kcov.PreinstalledProvisioner(
            kcov_executable.absolute()
        )
    else:
        provisioner = kcov.get_provisioner(wkctx)
    with log.stage_context(pipeline.Stage.BOOTSTRAP):
        kcov_path = provisioner.ensure_installed(wkctx)
    with log.stage_context(pipeline.Stage.INSTRUMENT):
        instrument.instrument_artifacts(
            ctx=wkctx,
            kcov=kcov_path,
            keep_going=keep_going,
        )


@click.command("upload")
@click.pass_obj
def upload_cmd(wkctx: context.WorkContext) -> None:
    """Upload the coverage reports."""
    with log.stage_context(pipeline.Stage.UPLOAD):
        upload.upload_coverage(ctx=wkctx)


@click.command()
@click.pass_obj
def clean(wkctx: context.WorkContext) -> None:
    """Delete the test binaries."""
    clickext.require_artifact_prefix(wkctx)
    with log.stage_context(pipeline.Stage.CLEANUP):
        cleanup.remove_artifacts(ctx=wkctx)
