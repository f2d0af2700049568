import logging
import os
import pathlib
import typing

import pytest
from click.testing import CliRunner

from covpipe import context, external_commands, settings


class RecordingRunner(external_commands.CommandRunner):
    """Command runner that records calls instead of running them

    ``fail_on`` maps a program basename or argument to the exit code that
    command should fail with.
    """

    def __init__(self, fail_on: dict[str, int] | None = None) -> None:
        super().__init__(dry_run=False)
        self.calls: list[tuple[str, ...]] = []
        self.cwds: list[pathlib.Path | None] = []
        self.environs: list[dict[str, str]] = []
        self.fail_on = fail_on or {}
        self.on_call: typing.Callable[[tuple[str, ...]], None] | None = None

    def run(
        self,
        cmd: typing.Sequence[str | os.PathLike[str]],
        *,
        cwd: pathlib.Path | str | None = None,
        extra_environ: typing.Mapping[str, str] | None = None,
        log_filename: pathlib.Path | str | None = None,
        ok_returncodes: typing.Container[int] = (0,),
    ) -> external_commands.CommandResult:
        str_cmd = tuple(os.fspath(c) for c in cmd)
        self.calls.append(str_cmd)
        self.cwds.append(pathlib.Path(cwd) if cwd is not None else None)
        self.environs.append(dict(extra_environ or {}))
        if self.on_call is not None:
            self.on_call(str_cmd)
        for arg in str_cmd:
            returncode = self.fail_on.get(os.path.basename(arg))
            if returncode is None:
                returncode = self.fail_on.get(arg)
            if returncode is not None and returncode not in ok_returncodes:
                raise external_commands.CommandFailed(
                    returncode, str_cmd, f"{str_cmd[0]} failed\n"
                )
        return external_commands.CommandResult(
            cmd=str_cmd,
            cwd=pathlib.Path(cwd) if cwd is not None else None,
            returncode=0,
            output="",
        )

    def programs(self) -> list[str]:
        return [os.path.basename(c[0]) for c in self.calls]


@pytest.fixture
def runner() -> RecordingRunner:
    return RecordingRunner()


@pytest.fixture
def project_dir(tmp_path: pathlib.Path) -> pathlib.Path:
    """A cargo-like project with test binaries and dependency files"""
    project = tmp_path / "ndimage"
    debug = project / "target" / "debug"
    debug.mkdir(parents=True)
    for name in ["ndimage-0a1b2c", "ndimage-3d4e5f", "ndimage-0a1b2c.d", "other-123"]:
        (debug / name).write_text(name)
    (debug / "ndimage-3d4e5f").chmod(0o755)
    (debug / "deps").mkdir()
    return project


@pytest.fixture
def tmp_context(
    tmp_path: pathlib.Path, project_dir: pathlib.Path, runner: RecordingRunner
) -> context.WorkContext:
    ctx = context.WorkContext(
        active_settings=settings.Settings.from_string(
            "project:\n  artifact_prefix: ndimage\n"
        ),
        project_dir=project_dir,
        work_dir=tmp_path / "work-dir",
        runner=runner,
    )
    ctx.setup()
    return ctx


@pytest.fixture(autouse=True)
def restore_logging() -> typing.Generator[None, None, None]:
    """The CLI adds root handlers and a record factory, remove them again"""
    root = logging.getLogger()
    level = root.level
    factory = logging.getLogRecordFactory()
    yield
    for handler in list(root.handlers):
        # pytest's capture handlers are subclasses, leave them alone
        if type(handler) in (logging.StreamHandler, logging.FileHandler):
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)
    logging.setLogRecordFactory(factory)


@pytest.fixture
def cli_runner(
    tmp_path: pathlib.Path,
) -> typing.Generator[CliRunner, None, None]:
    """Click CLI runner"""
    runner = CliRunner()
    with runner.isolated_filesystem(temp_dir=tmp_path):
        yield runner
