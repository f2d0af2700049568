import dataclasses
import logging
import pathlib
import typing

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True, order=True)
class Artifact:
    """A test binary produced by the build and test stage"""

    path: pathlib.Path

    @property
    def name(self) -> str:
        return self.path.name


def is_artifact(
    path: pathlib.Path,
    prefix: str,
    exclude_suffixes: typing.Iterable[str] = (),
) -> bool:
    """Does the file look like a test binary?

    The name must start with ``prefix`` and must not end with any of the
    ``exclude_suffixes`` (cargo writes ``<name>.d`` dependency files next
    to the binaries). Only regular files qualify.
    """
    name = path.name
    if not name.startswith(prefix):
        return False
    if any(name.endswith(suffix) for suffix in exclude_suffixes if suffix):
        return False
    return path.is_file()


def discover_artifacts(
    build_output_dir: pathlib.Path,
    prefix: str,
    exclude_suffixes: typing.Iterable[str] = (),
) -> list[Artifact]:
    """Find test binaries in the build output directory

    A missing directory has no artifacts. The result is sorted by path so
    instrumentation and cleanup see the same order.
    """
    if not prefix:
        raise ValueError("artifact prefix must not be empty")
    exclude_suffixes = tuple(exclude_suffixes)
    if not build_output_dir.is_dir():
        logger.debug("build output directory %s does not exist", build_output_dir)
        return []
    found = sorted(
        Artifact(path=p.absolute())
        for p in build_output_dir.glob(f"{prefix}*")
        if is_artifact(p, prefix, exclude_suffixes)
    )
    logger.debug(
        "found %d artifacts matching %s* in %s: %s",
        len(found),
        prefix,
        build_output_dir,
        [a.name for a in found],
    )
    return found


def report_dir_for(coverage_dir: pathlib.Path, artifact: Artifact) -> pathlib.Path:
    return coverage_dir / artifact.name


def ensure_report_dir(coverage_dir: pathlib.Path, artifact: Artifact) -> pathlib.Path:
    """Create the report directory for the artifact, if needed"""
    report_dir = report_dir_for(coverage_dir, artifact)
    report_dir.mkdir(parents=True, exist_ok=True)
    return report_dir
