import logging

import click
import rich
import rich.box
from rich.table import Table

from .. import artifacts, clickext, context, instrument

logger = logging.getLogger(__name__)


@click.command()
@click.pass_obj
def list_artifacts(wkctx: context.WorkContext) -> None:
    """List the test binaries that would be instrumented and removed.

    Shows each binary with its coverage report directory and whether that
    directory already exists.
    """
    clickext.require_artifact_prefix(wkctx)
    found = instrument.discover(wkctx)

    table = Table(
        title=f"Artifacts matching {wkctx.artifact_prefix}* in {wkctx.build_output_dir}",
        box=rich.box.MARKDOWN,
        title_justify="left",
    )
    table.add_column("Artifact", justify="left", no_wrap=True)
    table.add_column("Report directory", justify="left")
    table.add_column("Report exists", justify="center")

    for artifact in found:
        report_dir = artifacts.report_dir_for(wkctx.coverage_dir, artifact)
        table.add_row(
            artifact.name,
            str(report_dir),
            "yes" if report_dir.is_dir() else "no",
        )

    rich.get_console().print(table)
    logger.debug("listed %d artifacts", len(found))
