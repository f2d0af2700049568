"""Run the coverage stages in order

build -> bootstrap -> instrument -> upload -> cleanup

Every stage runs after the previous one returned. Any exception stops the
run where it happened; nothing is retried or rolled back.
"""

from __future__ import annotations

import dataclasses
import enum
import logging
import pathlib
import typing

from . import artifacts, build_test, cleanup, instrument, kcov, log, upload

if typing.TYPE_CHECKING:
    from . import context

logger = logging.getLogger(__name__)


class Stage(enum.StrEnum):
    BUILD = "build"
    BOOTSTRAP = "bootstrap"
    INSTRUMENT = "instrument"
    UPLOAD = "upload"
    CLEANUP = "cleanup"


@dataclasses.dataclass
class PipelineResult:
    completed: list[Stage] = dataclasses.field(default_factory=list)
    kcov: pathlib.Path | None = None
    instrumented: list[artifacts.Artifact] = dataclasses.field(default_factory=list)
    removed: list[artifacts.Artifact] = dataclasses.field(default_factory=list)


def run_pipeline(
    ctx: context.WorkContext,
    *,
    provisioner: kcov.Provisioner | None = None,
    skip_build: bool = False,
    skip_upload: bool = False,
    keep_going: bool = False,
) -> PipelineResult:
    if provisioner is None:
        provisioner = kcov.get_provisioner(ctx)
    result = PipelineResult()

    if skip_build:
        logger.info("skipping build and test")
    else:
        with log.stage_context(Stage.BUILD):
            build_test.build_and_test(ctx=ctx)
        result.completed.append(Stage.BUILD)

    with log.stage_context(Stage.BOOTSTRAP):
        result.kcov = provisioner.ensure_installed(ctx)
    result.completed.append(Stage.BOOTSTRAP)

    with log.stage_context(Stage.INSTRUMENT):
        result.instrumented = instrument.instrument_artifacts(
            ctx=ctx,
            kcov=result.kcov,
            keep_going=keep_going,
        )
    result.completed.append(Stage.INSTRUMENT)

    if skip_upload:
        logger.info("skipping upload")
    else:
        with log.stage_context(Stage.UPLOAD):
            upload.upload_coverage(ctx=ctx)
        result.completed.append(Stage.UPLOAD)

    with log.stage_context(Stage.CLEANUP):
        result.removed = cleanup.remove_artifacts(ctx=ctx)
    result.completed.append(Stage.CLEANUP)

    logger.info(
        "coverage pipeline finished: %d artifacts instrumented, %d removed",
        len(result.instrumented),
        len(result.removed),
    )
    return result
