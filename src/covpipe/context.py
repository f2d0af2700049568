from __future__ import annotations

import logging
import os
import pathlib
import typing

from . import external_commands, settings

logger = logging.getLogger(__name__)


class WorkContext:
    """Everything a pipeline stage needs to know about the run

    Values from the settings file, command line overrides, and the
    environment are resolved once here and threaded through every stage.
    """

    def __init__(
        self,
        active_settings: settings.Settings | None,
        project_dir: pathlib.Path,
        work_dir: pathlib.Path,
        artifact_prefix: str | None = None,
        build_output_dir: pathlib.Path | None = None,
        coverage_dir: pathlib.Path | None = None,
        kcov_executable: pathlib.Path | None = None,
        upload_token: str | None = None,
        dry_run: bool = False,
        max_jobs: int | None = None,
        runner: external_commands.CommandRunner | None = None,
    ):
        if active_settings is None:
            active_settings = settings.Settings()
        self.settings = active_settings
        self.project_dir = pathlib.Path(project_dir).absolute()

        project = active_settings.project
        self.artifact_prefix = artifact_prefix or project.artifact_prefix
        self.exclude_suffixes: tuple[str, ...] = tuple(project.exclude_suffixes)
        self.build_output_dir = self.project_dir / (
            build_output_dir or project.build_output_dir
        )
        self.coverage_dir = self.project_dir / (coverage_dir or project.coverage_dir)

        self.work_dir = pathlib.Path(work_dir).absolute()
        self.downloads_dir = self.work_dir / "downloads"
        self.kcov_source_root = self.work_dir / "kcov-src"
        self.kcov_destdir = self.work_dir / "kcov-build"
        self.logs_dir = self.work_dir / "logs"

        executable = kcov_executable or active_settings.kcov.executable
        self.kcov_executable = (
            pathlib.Path(executable).absolute() if executable else None
        )
        self.upload_token = upload_token
        self.dry_run = dry_run
        self.max_jobs = max_jobs
        self.runner = runner or external_commands.CommandRunner(dry_run=dry_run)

        # storing metrics
        self.time_store: dict[str, float] = {}
        self.time_description_store: dict[str, str] = {}

    @classmethod
    def upload_token_from_environ(
        cls,
        active_settings: settings.Settings,
        environ: typing.Mapping[str, str] | None = None,
    ) -> str | None:
        """Read the upload token named in the settings from the environment"""
        token_env = active_settings.upload.token_env
        if not token_env:
            return None
        if environ is None:
            environ = os.environ
        return environ.get(token_env) or None

    @property
    def kcov_installed_path(self) -> pathlib.Path:
        """Location of kcov after ``make install DESTDIR=...``"""
        prefix = self.settings.kcov.install_prefix.lstrip("/")
        return self.kcov_destdir / prefix / "bin" / "kcov"

    def setup(self) -> None:
        # Use mkdir(parents=True) to create the work directories in case
        # the parents do not exist yet.
        if self.dry_run:
            logger.debug("dry run, not creating work directories")
            return
        for p in [
            self.work_dir,
            self.downloads_dir,
            self.logs_dir,
        ]:
            if not p.exists():
                logger.debug("creating %s", p)
                p.mkdir(parents=True)
