from __future__ import annotations

import logging
import typing

from . import artifacts, instrument, metrics

if typing.TYPE_CHECKING:
    from . import context

logger = logging.getLogger(__name__)


@metrics.timeit(description="remove test binaries")
def remove_artifacts(*, ctx: context.WorkContext) -> list[artifacts.Artifact]:
    """Delete the test binaries so repeat runs start from a clean cache

    Uses the same discovery rule as instrumentation. Finding nothing to
    delete is fine.
    """
    found = instrument.discover(ctx)
    for artifact in found:
        if ctx.dry_run:
            logger.info("would remove %s", artifact.path)
            continue
        logger.debug("removing %s", artifact.path)
        artifact.path.unlink(missing_ok=True)
    if ctx.dry_run:
        logger.info(
            "would remove %d artifacts from %s", len(found), ctx.build_output_dir
        )
    else:
        logger.info("removed %d artifacts from %s", len(found), ctx.build_output_dir)
    return found
