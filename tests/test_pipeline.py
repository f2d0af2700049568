import logging
import pathlib

import pytest
import requests_mock

from covpipe import context, external_commands, instrument, metrics, pipeline

KCOV = pathlib.Path("/opt/kcov/bin/kcov")
UPLOADER_URL = "https://codecov.io/bash"


class FakeProvisioner:
    def __init__(self, runner, fail: bool = False) -> None:
        self.runner = runner
        self.fail = fail

    def ensure_installed(self, ctx: context.WorkContext) -> pathlib.Path:
        self.runner.calls.append(("<bootstrap>",))
        if self.fail:
            raise external_commands.CommandFailed(2, ["make"], "error")
        return KCOV


def _stages(runner) -> list[str]:
    """Map recorded calls to stage names, collapsing repeats"""
    names = {
        "cargo": "build",
        "<bootstrap>": "bootstrap",
        "kcov": "instrument",
        "bash": "upload",
    }
    stages: list[str] = []
    for program in runner.programs():
        stage = names[program]
        if not stages or stages[-1] != stage:
            stages.append(stage)
    return stages


def test_run_pipeline(tmp_context: context.WorkContext, runner) -> None:
    debug = tmp_context.build_output_dir
    with requests_mock.Mocker() as r:
        r.get(UPLOADER_URL, text="")
        result = pipeline.run_pipeline(
            tmp_context, provisioner=FakeProvisioner(runner)
        )

    assert _stages(runner) == ["build", "bootstrap", "instrument", "upload"]
    assert result.completed == [
        pipeline.Stage.BUILD,
        pipeline.Stage.BOOTSTRAP,
        pipeline.Stage.INSTRUMENT,
        pipeline.Stage.UPLOAD,
        pipeline.Stage.CLEANUP,
    ]
    assert result.kcov == KCOV
    assert [a.name for a in result.instrumented] == ["ndimage-0a1b2c", "ndimage-3d4e5f"]
    assert result.removed == result.instrumented
    assert not (debug / "ndimage-0a1b2c").exists()
    assert (debug / "ndimage-0a1b2c.d").exists()
    assert set(tmp_context.time_store) == {
        "build_and_test",
        "instrument_artifacts",
        "upload_coverage",
        "remove_artifacts",
    }


@pytest.mark.parametrize(
    "fail_on,expected_stages",
    [
        ({"build": 101}, ["build"]),
        ({"test": 101}, ["build"]),
        ({"ndimage-0a1b2c": 1}, ["build", "bootstrap", "instrument"]),
        ({"bash": 22}, ["build", "bootstrap", "instrument", "upload"]),
    ],
)
def test_run_pipeline_fail_fast(
    tmp_context: context.WorkContext,
    runner,
    fail_on: dict[str, int],
    expected_stages: list[str],
) -> None:
    runner.fail_on = fail_on
    with requests_mock.Mocker() as r:
        r.get(UPLOADER_URL, text="")
        with pytest.raises(external_commands.CommandFailed) as e:
            pipeline.run_pipeline(tmp_context, provisioner=FakeProvisioner(runner))
    assert e.value.returncode == next(iter(fail_on.values()))
    assert _stages(runner) == expected_stages
    # nothing is cleaned up after a failure
    assert (tmp_context.build_output_dir / "ndimage-0a1b2c").exists()


def test_run_pipeline_bootstrap_fails(
    tmp_context: context.WorkContext, runner
) -> None:
    with pytest.raises(external_commands.CommandFailed):
        pipeline.run_pipeline(
            tmp_context, provisioner=FakeProvisioner(runner, fail=True)
        )
    assert _stages(runner) == ["build", "bootstrap"]
    assert not tmp_context.coverage_dir.exists()


def test_run_pipeline_keep_going(tmp_context: context.WorkContext, runner) -> None:
    runner.fail_on = {"ndimage-0a1b2c": 1}
    with pytest.raises(instrument.InstrumentationError):
        pipeline.run_pipeline(
            tmp_context, provisioner=FakeProvisioner(runner), keep_going=True
        )
    assert _stages(runner) == ["build", "bootstrap", "instrument"]
    assert runner.programs().count("kcov") == 2


def test_run_pipeline_zero_artifacts(
    tmp_path: pathlib.Path, runner, caplog: pytest.LogCaptureFixture
) -> None:
    project = tmp_path / "empty"
    (project / "target" / "debug").mkdir(parents=True)
    ctx = context.WorkContext(
        active_settings=None,
        project_dir=project,
        work_dir=tmp_path / "work",
        artifact_prefix="ndimage",
        runner=runner,
    )
    ctx.setup()
    with requests_mock.Mocker() as r, caplog.at_level(logging.WARNING):
        r.get(UPLOADER_URL, text="")
        result = pipeline.run_pipeline(ctx, provisioner=FakeProvisioner(runner))
    assert _stages(runner) == ["build", "bootstrap", "upload"]
    assert result.instrumented == []
    assert result.removed == []
    assert pipeline.Stage.CLEANUP in result.completed


def test_run_pipeline_skip_build_and_upload(
    tmp_context: context.WorkContext, runner
) -> None:
    with requests_mock.Mocker() as r:
        result = pipeline.run_pipeline(
            tmp_context,
            provisioner=FakeProvisioner(runner),
            skip_build=True,
            skip_upload=True,
        )
    assert not r.called
    assert _stages(runner) == ["bootstrap", "instrument"]
    assert result.completed == [
        pipeline.Stage.BOOTSTRAP,
        pipeline.Stage.INSTRUMENT,
        pipeline.Stage.CLEANUP,
    ]
    assert len(result.removed) == 2


def test_run_pipeline_uses_configured_provisioner(
    tmp_context: context.WorkContext, runner
) -> None:
    exe = tmp_context.work_dir / "kcov"
    exe.write_text("#!/bin/sh\n")
    exe.chmod(0o755)
    tmp_context.kcov_executable = exe
    result = pipeline.run_pipeline(tmp_context, skip_build=True, skip_upload=True)
    assert result.kcov == exe
    assert runner.calls[0][0] == str(exe)


def test_summarize(tmp_context: context.WorkContext, runner, caplog) -> None:
    pipeline.run_pipeline(
        tmp_context,
        provisioner=FakeProvisioner(runner),
        skip_upload=True,
    )
    with caplog.at_level(logging.INFO):
        metrics.summarize(tmp_context, "coverage pipeline")
    assert "coverage pipeline took" in caplog.text
    assert "to instrument test binaries" in caplog.text
