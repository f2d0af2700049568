from __future__ import annotations

import logging
import typing

from . import metrics

if typing.TYPE_CHECKING:
    from . import context

logger = logging.getLogger(__name__)


@metrics.timeit(description="build and test the project")
def build_and_test(*, ctx: context.WorkContext) -> None:
    """Compile the project, then run its test suite

    The test run leaves the test binaries in the build output directory.
    A failing build raises before the tests are started.
    """
    build = ctx.settings.build
    logger.info("building %s", ctx.project_dir)
    ctx.runner.run(
        build.build_command,
        cwd=ctx.project_dir,
        extra_environ=build.env,
    )
    logger.info("running tests in %s", ctx.project_dir)
    ctx.runner.run(
        build.test_command,
        cwd=ctx.project_dir,
        extra_environ=build.env,
    )
