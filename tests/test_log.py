import logging

from covpipe import log


def _message(msg: str) -> str:
    record = log.CovpipeLogRecord("covpipe", logging.INFO, __file__, 1, msg, (), None)
    return record.getMessage()


def test_no_context() -> None:
    assert log.get_log_prefix() is None
    assert _message("hello") == "hello"


def test_stage_context() -> None:
    with log.stage_context("build"):
        assert log.get_log_prefix() == "build"
        assert _message("hello") == "build: hello"
    assert log.get_log_prefix() is None


def test_artifact_context() -> None:
    with log.stage_context("instrument"):
        with log.artifact_context("ndimage-0a1b2c"):
            assert _message("hello") == "instrument[ndimage-0a1b2c]: hello"
        assert _message("hello") == "instrument: hello"


def test_artifact_without_stage() -> None:
    with log.artifact_context("ndimage-0a1b2c"):
        assert log.get_log_prefix() is None
