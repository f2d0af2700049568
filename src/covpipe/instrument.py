from __future__ import annotations

import logging
import os
import pathlib
import typing

from . import artifacts, external_commands, log, metrics, progress

if typing.TYPE_CHECKING:
    from . import context, settings

logger = logging.getLogger(__name__)


class InstrumentationError(external_commands.CommandFailed):
    """kcov failed for one or more artifacts

    Raised after the loop when failures are collected instead of stopping
    at the first one. The return code is the one of the first failure.
    """

    def __init__(
        self,
        failures: list[tuple[artifacts.Artifact, external_commands.CommandFailed]],
    ):
        first = failures[0][1]
        super().__init__(first.returncode, first.cmd, first.output, cwd=first.cwd)
        self.failures = failures

    def __str__(self) -> str:
        names = ", ".join(
            f"{artifact.name} (exit code {err.returncode})"
            for artifact, err in self.failures
        )
        return f"kcov failed for {len(self.failures)} artifact(s): {names}"


def kcov_command(
    kcov: pathlib.Path,
    artifact: artifacts.Artifact,
    report_dir: pathlib.Path,
    kcov_settings: settings.KcovSettings,
) -> list[str]:
    cmd = [os.fspath(kcov)]
    if kcov_settings.exclude_patterns:
        cmd.append(f"--exclude-pattern={','.join(kcov_settings.exclude_patterns)}")
    if kcov_settings.verify:
        cmd.append("--verify")
    cmd.extend(kcov_settings.extra_args)
    cmd.extend([os.fspath(report_dir), os.fspath(artifact.path)])
    return cmd


def discover(ctx: context.WorkContext) -> list[artifacts.Artifact]:
    if not ctx.artifact_prefix:
        raise ValueError("no artifact prefix configured")
    return artifacts.discover_artifacts(
        ctx.build_output_dir,
        ctx.artifact_prefix,
        ctx.exclude_suffixes,
    )


def instrument_artifact(
    ctx: context.WorkContext,
    kcov: pathlib.Path,
    artifact: artifacts.Artifact,
) -> pathlib.Path:
    """Run kcov for a single artifact and return its report directory"""
    if ctx.dry_run:
        report_dir = artifacts.report_dir_for(ctx.coverage_dir, artifact)
    else:
        report_dir = artifacts.ensure_report_dir(ctx.coverage_dir, artifact)
    ctx.runner.run(
        kcov_command(kcov, artifact, report_dir, ctx.settings.kcov),
        cwd=ctx.project_dir,
    )
    logger.info("wrote coverage report to %s", report_dir)
    return report_dir


@metrics.timeit(description="instrument test binaries")
def instrument_artifacts(
    *,
    ctx: context.WorkContext,
    kcov: pathlib.Path,
    keep_going: bool = False,
) -> list[artifacts.Artifact]:
    """Run kcov against every test binary, one at a time

    The first failing artifact stops the loop unless ``keep_going`` is set,
    in which case the remaining artifacts are processed and an
    :exc:`InstrumentationError` is raised at the end.
    """
    found = discover(ctx)
    if not found:
        logger.warning(
            "no artifacts matching %s* in %s, nothing to instrument",
            ctx.artifact_prefix,
            ctx.build_output_dir,
        )
        return []

    logger.info("instrumenting %d artifacts with %s", len(found), kcov)
    instrumented: list[artifacts.Artifact] = []
    failures: list[tuple[artifacts.Artifact, external_commands.CommandFailed]] = []
    for artifact in progress.progress(found, unit="bin"):
        with log.artifact_context(artifact.name):
            try:
                instrument_artifact(ctx, kcov, artifact)
            except external_commands.CommandFailed as err:
                if not keep_going:
                    raise
                logger.error("kcov failed with exit code %d", err.returncode)
                failures.append((artifact, err))
            else:
                instrumented.append(artifact)

    if failures:
        raise InstrumentationError(failures)
    return instrumented
