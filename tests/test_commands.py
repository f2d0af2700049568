import importlib.metadata
from unittest import mock

import pytest

from covpipe import commands


def _ep(name: str, value: str) -> importlib.metadata.EntryPoint:
    return importlib.metadata.EntryPoint(name=name, value=value, group="test.cli")


@mock.patch("importlib.metadata.entry_points")
def test_load_commands_sorted(m_eps: mock.Mock) -> None:
    m_eps.return_value = [
        _ep("upload", "covpipe.commands.step:upload_cmd"),
        _ep("build", "covpipe.commands.step:build"),
    ]
    loaded = commands.load_commands("test.cli")
    assert [c.name for c in loaded] == ["build", "upload"]
    m_eps.assert_called_once_with(group="test.cli")


@mock.patch("importlib.metadata.entry_points")
def test_load_commands_duplicate(m_eps: mock.Mock) -> None:
    m_eps.return_value = [
        _ep("build", "covpipe.commands.step:build"),
        _ep("build", "other.plugin:build"),
    ]
    with pytest.raises(ValueError, match="provided by both"):
        commands.load_commands("test.cli")


@mock.patch("importlib.metadata.entry_points")
def test_load_commands_name_mismatch(m_eps: mock.Mock) -> None:
    m_eps.return_value = [_ep("compile", "covpipe.commands.step:build")]
    with pytest.raises(ValueError, match="names itself 'build'"):
        commands.load_commands("test.cli")


@mock.patch("importlib.metadata.entry_points")
def test_load_commands_not_a_command(m_eps: mock.Mock) -> None:
    m_eps.return_value = [_ep("discover", "covpipe.instrument:discover")]
    with pytest.raises(RuntimeError, match="not a click command"):
        commands.load_commands("test.cli")


@mock.patch("importlib.metadata.entry_points")
def test_load_commands_import_error(m_eps: mock.Mock) -> None:
    m_eps.return_value = [_ep("missing", "covpipe.no_such_module:cmd")]
    with pytest.raises(RuntimeError, match="cannot load command 'missing'"):
        commands.load_commands("test.cli")
