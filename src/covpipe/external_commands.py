import dataclasses
import logging
import os
import pathlib
import shlex
import subprocess
import typing

from . import log

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class CommandResult:
    """Outcome of a command that exited with an accepted return code"""

    cmd: tuple[str, ...]
    cwd: pathlib.Path | None
    returncode: int
    output: str


class CommandFailed(subprocess.CalledProcessError):
    """Command exited with a return code outside of ``ok_returncodes``"""

    def __init__(
        self,
        returncode: int,
        cmd: typing.Sequence[str],
        output: str | None = None,
        cwd: pathlib.Path | None = None,
    ):
        super().__init__(returncode, list(cmd), output)
        self.cwd = cwd


def _format_output(output: str) -> str | None:
    if not output:
        return None
    # Add stage prefix to continuation lines for greppability
    prefix = log.get_log_prefix()
    if prefix:
        # CovpipeLogRecord handles first line, we handle continuation lines
        return output.rstrip("\n").replace("\n", f"\n{prefix}: ")
    return output


# based on pyproject_hooks/_impl.py: quiet_subprocess_runner
def run(
    cmd: typing.Sequence[str | os.PathLike[str]],
    *,
    cwd: pathlib.Path | str | None = None,
    extra_environ: typing.Mapping[str, str] | None = None,
    log_filename: pathlib.Path | str | None = None,
    ok_returncodes: typing.Container[int] = (0,),
) -> CommandResult:
    """Call the subprocess while logging output

    Blocks until the child exits. Raises :exc:`CommandFailed` when the
    return code is not in ``ok_returncodes``.
    """
    str_cmd = tuple(os.fspath(c) for c in cmd)
    if extra_environ is None:
        extra_environ = {}
    env = os.environ.copy()
    env.update(extra_environ)

    logger.debug(
        "running: %s %s in %s",
        " ".join(f"{k}={shlex.quote(v)}" for k, v in extra_environ.items()),
        shlex.join(str_cmd),
        cwd or ".",
    )
    if log_filename:
        with open(log_filename, "w") as log_file:
            completed = subprocess.run(
                str_cmd,
                cwd=cwd,
                env=env,
                stdout=log_file,
                stderr=subprocess.STDOUT,
            )
        with open(log_filename, "r", encoding="utf-8", errors="replace") as f:
            output = f.read()
    else:
        completed = subprocess.run(
            str_cmd,
            cwd=cwd,
            env=env,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
        )
        output = (
            completed.stdout.decode("utf-8", errors="replace")
            if completed.stdout
            else ""
        )

    formatted_output = _format_output(output)
    result_cwd = pathlib.Path(cwd) if cwd is not None else None

    if completed.returncode not in ok_returncodes:
        prefix = log.get_log_prefix()
        # Prefix first line for error output (embedded in larger message)
        if formatted_output and prefix:
            output_to_log = f"\n{prefix}: {formatted_output}"
        elif formatted_output:
            output_to_log = f"\n{formatted_output}"
        else:
            output_to_log = ""
        logger.error(
            "command failed with exit code %d: %s%s",
            completed.returncode,
            shlex.join(str_cmd),
            output_to_log,
        )
        raise CommandFailed(completed.returncode, str_cmd, output, cwd=result_cwd)

    # Log command output for debugging
    if formatted_output:
        logger.debug(formatted_output)

    return CommandResult(
        cmd=str_cmd,
        cwd=result_cwd,
        returncode=completed.returncode,
        output=output,
    )


class CommandRunner:
    """Run external commands for the pipeline stages

    Every stage issues its commands through the runner attached to the
    work context, so tests can substitute a recording fake. In dry-run mode
    commands are logged and reported as successful without being executed.
    """

    def __init__(self, dry_run: bool = False) -> None:
        self.dry_run = dry_run

    def run(
        self,
        cmd: typing.Sequence[str | os.PathLike[str]],
        *,
        cwd: pathlib.Path | str | None = None,
        extra_environ: typing.Mapping[str, str] | None = None,
        log_filename: pathlib.Path | str | None = None,
        ok_returncodes: typing.Container[int] = (0,),
    ) -> CommandResult:
        if self.dry_run:
            str_cmd = tuple(os.fspath(c) for c in cmd)
            logger.info("would run: %s in %s", shlex.join(str_cmd), cwd or ".")
            return CommandResult(
                cmd=str_cmd,
                cwd=pathlib.Path(cwd) if cwd is not None else None,
                returncode=0,
                output="",
            )
        return run(
            cmd,
            cwd=cwd,
            extra_environ=extra_environ,
            log_filename=log_filename,
            ok_returncodes=ok_returncodes,
        )
