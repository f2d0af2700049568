import contextlib
import contextvars
import logging
import typing

TERSE_LOG_FMT = "%(message)s"
VERBOSE_LOG_FMT = "%(asctime)s %(levelname)s:%(name)s:%(lineno)d: %(message)s"

stage_ctxvar: contextvars.ContextVar[str] = contextvars.ContextVar("stage")
artifact_ctxvar: contextvars.ContextVar[str] = contextvars.ContextVar("artifact")


@contextlib.contextmanager
def stage_context(stage: str) -> typing.Generator[None, None, None]:
    """Context manager for stage_ctxvar"""
    token = stage_ctxvar.set(stage)
    try:
        yield None
    finally:
        stage_ctxvar.reset(token)


@contextlib.contextmanager
def artifact_context(artifact_name: str) -> typing.Generator[None, None, None]:
    """Context manager for artifact_ctxvar"""
    token = artifact_ctxvar.set(artifact_name)
    try:
        yield None
    finally:
        artifact_ctxvar.reset(token)


def get_log_prefix() -> str | None:
    """Prefix for the current stage and artifact, if any

    Returns ``stage`` or ``stage[artifact]``.
    """
    try:
        stage = stage_ctxvar.get()
    except LookupError:
        return None
    try:
        artifact = artifact_ctxvar.get()
    except LookupError:
        return stage
    return f"{stage}[{artifact}]"


class CovpipeLogRecord(logging.LogRecord):
    """Logger record factory to add the stage and artifact from context vars

    The class prepends f"{stage}: " to every log message if-and-only-if
    ``stage_ctxvar`` is set for the current context. When ``artifact_ctxvar``
    is also set, the record is prepended with f"{stage}[{artifact}]: ".

    ::
        with stage_context("instrument"):
            for artifact in artifacts:
                with artifact_context(artifact.name):
                    do_stuff(artifact)
    """

    def getMessage(self) -> str:  # noqa: N802
        msg = super().getMessage()
        prefix = get_log_prefix()
        if prefix is None:
            return msg
        return f"{prefix}: {msg}"
