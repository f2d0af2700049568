import importlib.metadata

import click

ENTRY_POINT_GROUP = "covpipe.cli"


def _load_entry_point(ep: importlib.metadata.EntryPoint) -> click.Command:
    try:
        command = ep.load()
    except Exception as e:
        raise RuntimeError(f"cannot load command {ep.name!r} from {ep.value!r}") from e
    if not isinstance(command, click.Command):
        raise RuntimeError(f"{ep.value!r} is not a click command: {command!r}")
    if command.name != ep.name:
        raise ValueError(
            f"{ep.value!r} is registered as {ep.name!r} but names itself "
            f"{command.name!r}"
        )
    return command


def load_commands(group: str = ENTRY_POINT_GROUP) -> list[click.Command]:
    """Pipeline commands registered under the ``group`` entry points

    Sorted by name. Two entry points providing the same command name is an
    error.
    """
    by_name: dict[str, importlib.metadata.EntryPoint] = {}
    for ep in importlib.metadata.entry_points(group=group):
        if ep.name in by_name:
            raise ValueError(
                f"command {ep.name!r} is provided by both "
                f"{by_name[ep.name].value!r} and {ep.value!r}"
            )
        by_name[ep.name] = ep
    return [_load_entry_point(by_name[name]) for name in sorted(by_name)]


commands = load_commands()
