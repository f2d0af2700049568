#!/usr/bin/env python3

import logging
import pathlib
import sys

import click

from . import clickext, commands, context, external_commands, log, settings

logger = logging.getLogger(__name__)


@click.group(name="covpipe")
@click.version_option(package_name="covpipe", prog_name="covpipe")
@click.option(
    "-v",
    "--verbose",
    default=False,
    is_flag=True,
    help="report more detail to the console",
)
@click.option(
    "--log-file",
    type=clickext.ClickPath(),
    help="save detailed report of actions to file",
)
@click.option(
    "--error-log-file",
    type=clickext.ClickPath(),
    help="save error messages to a file",
)
@click.option(
    "--settings-file",
    default=pathlib.Path("covpipe.yaml"),
    type=clickext.ClickPath(),
    help="location of the settings file",
)
@click.option(
    "-C",
    "--project-dir",
    default=pathlib.Path("."),
    type=clickext.ClickPath(file_okay=False),
    help="project to build and instrument",
)
@click.option(
    "--artifact-prefix",
    default=None,
    help="name prefix of the test binaries (overrides settings)",
)
@click.option(
    "--build-output-dir",
    default=None,
    type=clickext.RelativePath(),
    help="directory with the test binaries, relative to the project (overrides settings)",
)
@click.option(
    "--coverage-dir",
    default=None,
    type=clickext.RelativePath(),
    help="root of the coverage reports, relative to the project (overrides settings)",
)
@click.option(
    "-t",
    "--work-dir",
    default=pathlib.Path("covpipe-work"),
    type=clickext.ClickPath(),
    help="location to manage working files, including the kcov build",
)
@click.option(
    "-j",
    "--jobs",
    type=int,
    default=None,
    help="maximum number of parallel jobs to compile kcov",
)
@click.option(
    "--dry-run",
    default=False,
    is_flag=True,
    help="log the commands instead of running them",
)
@click.pass_context
def main(
    ctx: click.Context,
    verbose: bool,
    log_file: pathlib.Path | None,
    error_log_file: pathlib.Path | None,
    settings_file: pathlib.Path,
    project_dir: pathlib.Path,
    artifact_prefix: str | None,
    build_output_dir: pathlib.Path | None,
    coverage_dir: pathlib.Path | None,
    work_dir: pathlib.Path,
    jobs: int | None,
    dry_run: bool,
) -> None:
    # Set the overall logger level to debug and allow the handlers to filter
    # messages at their own level.
    logging.getLogger().setLevel(logging.DEBUG)
    logging.setLogRecordFactory(log.CovpipeLogRecord)
    # Configure a stream handler for console messages at the requested verbosity
    # level.
    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    stream_formatter = logging.Formatter(
        log.VERBOSE_LOG_FMT if verbose else log.TERSE_LOG_FMT
    )
    stream_handler.setFormatter(stream_formatter)
    logging.getLogger().addHandler(stream_handler)
    # If we're given an error log file, configure a file handler for all error
    # messages to make them easier to find without sifting through the full
    # debug log.
    if error_log_file:
        error_handler = logging.FileHandler(error_log_file)
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(logging.Formatter(log.VERBOSE_LOG_FMT))
        logging.getLogger().addHandler(error_handler)
    # If we're given a debug log filename, configure the file handler.
    if log_file:
        # Always log to the file at debug level
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(log.VERBOSE_LOG_FMT))
        logging.getLogger().addHandler(file_handler)
        logger.info("logging debug information to %s", log_file)
    # Report the error log file after configuring the debug log file so the
    # message is saved to the debug log.
    if error_log_file:
        logger.info("logging errors to %s", error_log_file)

    if not settings_file.is_absolute():
        settings_file = project_dir / settings_file
    active_settings = settings.Settings.load(settings_file)

    wkctx = context.WorkContext(
        active_settings=active_settings,
        project_dir=project_dir,
        work_dir=work_dir,
        artifact_prefix=artifact_prefix,
        build_output_dir=build_output_dir,
        coverage_dir=coverage_dir,
        upload_token=context.WorkContext.upload_token_from_environ(active_settings),
        dry_run=dry_run,
        max_jobs=jobs,
    )

    logger.info(f"project dir: {wkctx.project_dir}")
    logger.info(f"artifact prefix: {wkctx.artifact_prefix}")
    logger.info(f"build output dir: {wkctx.build_output_dir}")
    logger.info(f"coverage dir: {wkctx.coverage_dir}")
    logger.info(f"work dir: {wkctx.work_dir}")
    logger.info(f"dry run: {dry_run}")

    wkctx.setup()
    ctx.obj = wkctx


for cmd in commands.commands:
    main.add_command(cmd)


def invoke_main() -> None:
    # Wrapper for the click main command that ensures any exceptions
    # are logged so that CI outputs include the traceback, and that a
    # failed external command becomes the exit code of the run.
    try:
        main(auto_envvar_prefix="COVPIPE")
    except external_commands.CommandFailed as err:
        logger.exception(err)
        sys.exit(err.returncode or 1)
    except Exception as err:
        logger.exception(err)
        raise


if __name__ == "__main__":
    invoke_main()
