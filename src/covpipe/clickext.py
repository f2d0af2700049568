from __future__ import annotations

import os
import pathlib
import typing

import click

if typing.TYPE_CHECKING:
    from . import context


class ClickPath(click.Path):
    """ClickPath that returns pathlib.Path"""

    def convert(
        self,
        value: str | os.PathLike[str],
        param: click.core.Parameter | None,
        ctx: click.core.Context | None,
    ) -> pathlib.Path:
        path = super().convert(value=value, param=param, ctx=ctx)
        if isinstance(path, bytes):
            return pathlib.Path(os.fsdecode(path))
        return pathlib.Path(path)


class RelativePath(ClickPath):
    """ClickPath that rejects absolute paths"""

    def convert(
        self,
        value: str | os.PathLike[str],
        param: click.core.Parameter | None,
        ctx: click.core.Context | None,
    ) -> pathlib.Path:
        path = super().convert(value=value, param=param, ctx=ctx)
        if path.is_absolute():
            self.fail(f"'{path}' must be relative to the project directory", param, ctx)
        return path


def require_artifact_prefix(wkctx: context.WorkContext) -> str:
    """Fail the command unless test binaries can be discovered"""
    if not wkctx.artifact_prefix:
        raise click.UsageError(
            "no artifact prefix, pass --artifact-prefix or set "
            "project.artifact_prefix in the settings file"
        )
    return wkctx.artifact_prefix
