"""Provision the kcov coverage tool

kcov is built from a source archive for every run: download, unpack,
configure with cmake, compile with make, and install below a DESTDIR in
the work directory. A pre-installed kcov can be used instead.
"""

from __future__ import annotations

import logging
import os
import pathlib
import shutil
import typing

from . import metrics, sources

if typing.TYPE_CHECKING:
    from . import context

logger = logging.getLogger(__name__)


class Provisioner(typing.Protocol):
    """Make the coverage tool available and return its path"""

    def ensure_installed(self, ctx: context.WorkContext) -> pathlib.Path: ...


class PreinstalledProvisioner:
    """Use a kcov binary that is already on disk"""

    def __init__(self, executable: pathlib.Path) -> None:
        self.executable = executable

    def ensure_installed(self, ctx: context.WorkContext) -> pathlib.Path:
        if not ctx.dry_run and not os.access(self.executable, os.X_OK):
            raise FileNotFoundError(
                f"kcov executable {self.executable} does not exist or is not executable"
            )
        logger.info("using pre-installed kcov %s", self.executable)
        return self.executable


class SourceBuildProvisioner:
    """Fetch, compile, and install kcov from source"""

    def ensure_installed(self, ctx: context.WorkContext) -> pathlib.Path:
        return bootstrap_kcov(ctx=ctx)


def get_provisioner(ctx: context.WorkContext) -> Provisioner:
    if ctx.kcov_executable is not None:
        return PreinstalledProvisioner(ctx.kcov_executable)
    return SourceBuildProvisioner()


def download_source(ctx: context.WorkContext) -> pathlib.Path:
    kcov = ctx.settings.kcov
    url = kcov.resolved_source_url()
    if not kcov.is_pinned:
        logger.warning(
            "building kcov from the moving ref %r, coverage results may differ "
            "between runs; set kcov.version to pin a release",
            kcov.version,
        )
    logger.info("downloading kcov source from %s", url)
    if ctx.dry_run:
        return ctx.downloads_dir / f"kcov-{kcov.version}.tar.gz"
    return sources.download_url(
        destination_dir=ctx.downloads_dir,
        url=url,
        destination_filename=f"kcov-{kcov.version}.tar.gz",
    )


def unpack_source(
    ctx: context.WorkContext, source_filename: pathlib.Path
) -> pathlib.Path:
    expected_name = f"kcov-{ctx.settings.kcov.version}"
    if ctx.dry_run:
        return ctx.kcov_source_root / expected_name
    return sources.unpack_source(
        source_filename=source_filename,
        unpack_dir=ctx.kcov_source_root,
        expected_name=expected_name,
    )


def cmake_args(ctx: context.WorkContext) -> list[str]:
    """cmake cache options for the kcov build"""
    kcov = ctx.settings.kcov
    args = [f"-DCMAKE_INSTALL_PREFIX={kcov.install_prefix}"]
    launcher = kcov.compiler_launcher
    if launcher:
        launcher_path = shutil.which(launcher)
        if launcher_path:
            logger.debug("using compiler launcher %s", launcher_path)
            args.extend(
                [
                    f"-DCMAKE_C_COMPILER_LAUNCHER={launcher}",
                    f"-DCMAKE_CXX_COMPILER_LAUNCHER={launcher}",
                ]
            )
        else:
            logger.info("compiler launcher %s not found, compiling without it", launcher)
    return args


def configure(ctx: context.WorkContext, source_dir: pathlib.Path) -> pathlib.Path:
    build_dir = source_dir / "build"
    if not ctx.dry_run:
        build_dir.mkdir(parents=True, exist_ok=True)
    logger.info("configuring kcov in %s", build_dir)
    ctx.runner.run(
        ["cmake", "..", *cmake_args(ctx)],
        cwd=build_dir,
        log_filename=None if ctx.dry_run else ctx.logs_dir / "kcov-cmake.log",
    )
    return build_dir


def compile_source(ctx: context.WorkContext, build_dir: pathlib.Path) -> None:
    jobs = ctx.settings.kcov.parallel_jobs(ctx.max_jobs)
    logger.info("compiling kcov with %d parallel jobs", jobs)
    ctx.runner.run(
        ["make", f"-j{jobs}"],
        cwd=build_dir,
        log_filename=None if ctx.dry_run else ctx.logs_dir / "kcov-make.log",
    )


def install(ctx: context.WorkContext, build_dir: pathlib.Path) -> pathlib.Path:
    logger.info("installing kcov into %s", ctx.kcov_destdir)
    ctx.runner.run(
        ["make", "install", f"DESTDIR={ctx.kcov_destdir}"],
        cwd=build_dir,
    )
    installed = ctx.kcov_installed_path
    if not ctx.dry_run and not installed.is_file():
        raise FileNotFoundError(f"kcov install did not produce {installed}")
    return installed


@metrics.timeit(description="build and install kcov")
def bootstrap_kcov(*, ctx: context.WorkContext) -> pathlib.Path:
    """Download, build, and install kcov, returning the binary path

    Nothing is reused from a previous run.
    """
    source_filename = download_source(ctx)
    source_dir = unpack_source(ctx, source_filename)
    build_dir = configure(ctx, source_dir)
    compile_source(ctx, build_dir)
    installed = install(ctx, build_dir)
    logger.info("kcov installed as %s", installed)
    return installed
