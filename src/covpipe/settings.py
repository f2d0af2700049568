import logging
import os
import pathlib
import string
import typing
from collections.abc import Mapping

import psutil
import pydantic
import yaml
from pydantic import Field

logger = logging.getLogger(__name__)

# git refs that move over time, building them is not reproducible
MOVING_REFS = frozenset({"master", "main", "HEAD"})


# directory relative to the project root
def _before_relative_dir(p: str) -> pathlib.Path:
    result = pathlib.Path(p)
    if result.is_absolute():
        raise ValueError(f"{result!r} is not a relative path")
    return result


RelativeDirectory = typing.Annotated[
    pathlib.Path,
    pydantic.BeforeValidator(_before_relative_dir),
]


# environment variables map
def _validate_envkey(v: typing.Any) -> str:
    """Validate env key, converts int, float, bool"""
    if isinstance(v, bool):
        return "1" if v else "0"
    elif isinstance(v, int | float):
        return str(v)
    elif not isinstance(v, str):
        raise TypeError(f"unsupported type {type(v)}: {v!r}")
    if "$(" in v:
        raise ValueError(f"'{v}': subshell '$()' is not supported.")
    return v.strip()


EnvKey = typing.Annotated[
    str,
    pydantic.BeforeValidator(_validate_envkey),
]

EnvVars = dict[str, EnvKey]

# URL with ${version} templating
Template = typing.NewType("Template", str)

# common settings
MODEL_CONFIG = pydantic.ConfigDict(
    # don't accept unknown keys
    extra="forbid",
    # all fields are immutable
    frozen=True,
    # read inline doc strings
    use_attribute_docstrings=True,
)


def get_cpu_count() -> int:
    """CPU count from scheduler affinity"""
    if hasattr(os, "sched_getaffinity"):
        return len(os.sched_getaffinity(0))
    else:
        return os.cpu_count() or 1


def get_available_memory_gib() -> float:
    """available virtual memory in GiB"""
    return psutil.virtual_memory().available / (1024**3)


class ProjectSettings(pydantic.BaseModel):
    """Project layout

    ::

        artifact_prefix: ndimage
        build_output_dir: target/debug
        coverage_dir: target/cov
        exclude_suffixes: [".d"]
    """

    model_config = MODEL_CONFIG

    artifact_prefix: str | None = None
    """Name prefix of the test binaries to instrument"""

    build_output_dir: RelativeDirectory = pathlib.Path("target/debug")
    """Directory holding the test binaries, relative to the project"""

    coverage_dir: RelativeDirectory = pathlib.Path("target/cov")
    """Root of the per-artifact coverage reports, relative to the project"""

    exclude_suffixes: list[str] = Field(default_factory=lambda: [".d"])
    """Name suffixes of dependency and debug-info files to skip"""


class BuildSettings(pydantic.BaseModel):
    """Build and test commands

    ::

        build_command: [cargo, build, --verbose]
        test_command: [cargo, test, --verbose]
        env:
          RUST_BACKTRACE: 1
    """

    model_config = MODEL_CONFIG

    build_command: list[str] = Field(
        default_factory=lambda: ["cargo", "build", "--verbose"], min_length=1
    )
    """Command compiling the project"""

    test_command: list[str] = Field(
        default_factory=lambda: ["cargo", "test", "--verbose"], min_length=1
    )
    """Command running the test suite and producing the test binaries"""

    env: EnvVars = Field(default_factory=dict)
    """Extra environment variables for the build and test commands"""


class BuildOptions(pydantic.BaseModel):
    """Parallel compilation options for the coverage tool

    ::

        cpu_cores_per_job: 1
        memory_per_job_gb: 1.0
    """

    model_config = MODEL_CONFIG

    cpu_cores_per_job: int = Field(default=1, ge=1)
    """Scale parallel make jobs by available CPU cores

    Examples:

    1: as many parallel jobs as CPU logical cores

    2: allocate 2 cores per job
    """

    memory_per_job_gb: float = Field(default=1.0, ge=0.1)
    """Scale parallel make jobs by available virtual memory (without swap)"""


class KcovSettings(pydantic.BaseModel):
    """Coverage tool source and invocation

    ::

        version: v43
        source_url: https://github.com/SimonKagstrom/kcov/archive/${version}.tar.gz
        compiler_launcher: ccache
        exclude_patterns: [/.cargo, /usr/lib]
        verify: true
    """

    model_config = MODEL_CONFIG

    executable: pathlib.Path | None = None
    """Pre-installed kcov binary, skips building from source"""

    version: str = "master"
    """Git ref of the source archive, substituted for ``${version}``"""

    source_url: Template = Template(
        "https://github.com/SimonKagstrom/kcov/archive/${version}.tar.gz"
    )
    """Source archive download url (string template)"""

    compiler_launcher: str | None = "ccache"
    """Compiler launcher for cmake, used only when it is on PATH"""

    install_prefix: str = "/usr/local"
    """cmake install prefix below the DESTDIR"""

    exclude_patterns: list[str] = Field(
        default_factory=lambda: ["/.cargo", "/usr/lib"]
    )
    """Path patterns omitted from coverage accounting"""

    verify: bool = True
    """Ask kcov to verify its own output"""

    extra_args: list[str] = Field(default_factory=list)
    """Additional kcov arguments placed before the output directory"""

    build_options: BuildOptions = Field(default_factory=BuildOptions)

    @property
    def is_pinned(self) -> bool:
        return self.version not in MOVING_REFS

    def resolved_source_url(self) -> str:
        template = string.Template(self.source_url)
        return template.substitute(version=self.version)

    def parallel_jobs(self, max_jobs: int | None = None) -> int:
        """How many parallel make jobs?"""
        # adjust by CPU cores, at least 1
        cpu_cores_per_job = self.build_options.cpu_cores_per_job
        cpu_count = get_cpu_count()
        max_num_job_cores = int(max(1, cpu_count // cpu_cores_per_job))
        logger.debug(f"{max_num_job_cores=}, {cpu_cores_per_job=}, {cpu_count=}")

        # adjust by memory consumption per job, at least 1
        memory_per_job_gb = self.build_options.memory_per_job_gb
        free_memory = get_available_memory_gib()
        max_num_jobs_memory = int(max(1.0, free_memory // memory_per_job_gb))
        logger.debug(
            f"{max_num_jobs_memory=}, {memory_per_job_gb=}, {free_memory=:0.1f} GiB"
        )

        # limit by smallest amount of CPU, memory, and --jobs parameter
        if max_jobs is None:
            max_jobs = cpu_count
        return max(1, min(max_num_job_cores, max_num_jobs_memory, max_jobs))


class UploadSettings(pydantic.BaseModel):
    """Coverage upload

    ::

        uploader_url: https://codecov.io/bash
        token_env: CODECOV_TOKEN
    """

    model_config = MODEL_CONFIG

    uploader_url: str = "https://codecov.io/bash"
    """Uploader script fetched at run time"""

    token_env: str | None = "CODECOV_TOKEN"
    """Environment variable holding the upload token"""

    extra_args: list[str] = Field(default_factory=list)
    """Additional uploader arguments"""


class Settings(pydantic.BaseModel):
    """covpipe settings file"""

    model_config = MODEL_CONFIG

    project: ProjectSettings = Field(default_factory=ProjectSettings)
    build: BuildSettings = Field(default_factory=BuildSettings)
    kcov: KcovSettings = Field(default_factory=KcovSettings)
    upload: UploadSettings = Field(default_factory=UploadSettings)

    @classmethod
    def from_string(
        cls, raw_yaml: str, *, source: pathlib.Path | str | None = None
    ) -> "Settings":
        """Load from raw yaml string"""
        parsed: typing.Any = yaml.safe_load(raw_yaml)
        if parsed is None:
            # empty file
            parsed = {}
        elif not isinstance(parsed, Mapping):
            raise TypeError(f"invalid yaml, not a dict (source: {source!r}): {parsed}")
        try:
            return cls(**parsed)
        except Exception as err:
            raise RuntimeError(
                f"failed to load settings (source: {source!r}): {err}"
            ) from err

    @classmethod
    def from_file(cls, filename: pathlib.Path) -> "Settings":
        """Load from file

        Raises :exc:`FileNotFound` when the file is not found.
        """
        filename = filename.absolute()
        logger.info("loading settings from %s", filename)
        raw_yaml = filename.read_text(encoding="utf-8")
        return cls.from_string(raw_yaml, source=filename)

    @classmethod
    def load(cls, filename: pathlib.Path | None) -> "Settings":
        """Load from file if it exists, otherwise use defaults"""
        if filename is not None and filename.is_file():
            return cls.from_file(filename)
        logger.debug("settings file %s does not exist, using defaults", filename)
        return cls()
