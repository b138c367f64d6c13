"""datapack CLI - Main Entry Point.

Commands:
    pack     - Pack modules into a self-contained script
    inspect  - List the modules packed into a script
    show     - Print one packed module
"""

import json
import logging
import sys
from pathlib import Path
from typing import Optional, Tuple

import click

from . import __cli_name__, __version__
from .utils.colors import _CHECK, _CROSS, dim, error, kv, section, success, table
from ..config import ConfigLoader
from ..faults import Fault
from ..format import module_keys, resource_key
from ..packer import datapack_modules
from ..reader import ArchiveReader


def _configure_logging(verbose: bool, quiet: bool) -> None:
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.ERROR
    else:
        level = logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _fail(message: str) -> None:
    error(f"  {_CROSS} {message}")
    sys.exit(1)


@click.group()
@click.version_option(version=__version__, prog_name=__cli_name__)
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
@click.option("--quiet", "-q", is_flag=True, help="Minimal output")
@click.pass_context
def cli(ctx, verbose: bool, quiet: bool):
    """Pack Python modules into one script that imports them lazily.

    \b
    Quick start:
      datapack pack mypkg.util mypkg.cli -o app.py
      datapack inspect app.py
      datapack show app.py mypkg.util
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    _configure_logging(verbose, quiet)


# ============================================================================
# pack
# ============================================================================

def _read_text(path: Optional[str]) -> Optional[str]:
    if path is None:
        return None
    return Path(path).read_text(encoding="utf-8")


def _parse_srcs(srcs: Tuple[str, ...]) -> dict:
    module_srcs = {}
    for item in srcs:
        name, sep, path = item.partition("=")
        if not sep or not name or not path:
            raise click.BadParameter(f"expected NAME=PATH, got {item!r}", param_hint="--src")
        module_srcs[name] = Path(path).read_bytes()
    return module_srcs


@cli.command("pack")
@click.argument("modules", nargs=-1)
@click.option("--output", "-o", type=click.Path(dir_okay=False), help="Write the script to FILE")
@click.option("--overwrite/--no-overwrite", default=None, help="Replace an existing output file")
@click.option("--src", "srcs", multiple=True, metavar="NAME=PATH", help="Pack PATH under module NAME")
@click.option("--search-path", "-I", "search_path", multiple=True, help="Directory to search for modules")
@click.option("--preamble-file", type=click.Path(exists=True, dir_okay=False), help="Text placed before the bootstrap")
@click.option("--postamble-file", type=click.Path(exists=True, dir_okay=False), help="Text placed after the bootstrap")
@click.option("--hook-at-end/--hook-at-front", "put_hook_at_the_end", default=None, help="Where to register the import hook")
@click.option("--stripper/--no-stripper", default=None, help="Strip docstrings, comments and blank lines")
@click.option("--stripper-maintain-linum/--no-stripper-maintain-linum", default=None, help="Keep line numbers while stripping")
@click.option("--stripper-ws/--no-stripper-ws", default=None, help="Strip whitespace")
@click.option("--stripper-comment/--no-stripper-comment", default=None, help="Strip comments")
@click.option("--stripper-doc/--no-stripper-doc", default=None, help="Strip docstrings")
@click.option("--stripper-log/--no-stripper-log", default=None, help="Strip logger.debug() calls")
@click.option("--parents/--no-parents", "include_parents", default=None, help="Also pack parent package __init__.py files")
@click.option("--config", "config_file", type=click.Path(exists=True, dir_okay=False), help="Config file (YAML or JSON)")
@click.option("--env-file", type=click.Path(dir_okay=False), help=".env file with DATAPACK_* settings")
@click.option("--json-output", is_flag=True, help="Print the result as JSON")
@click.pass_context
def pack_cmd(ctx, modules, output, srcs, search_path, preamble_file, postamble_file,
             config_file, env_file, json_output, **flags):
    """
    Pack modules into a self-contained script.

    Examples:
      datapack pack mypkg.util -o app.py
      datapack pack --src app.helpers=helpers.py --postamble-file main.py -o app.py
      datapack pack mypkg --stripper > app.py
    """
    overrides = dict(flags)
    overrides["output"] = output
    overrides["search_path"] = list(search_path) or None
    overrides["module_names"] = list(modules) or None
    try:
        overrides["preamble"] = _read_text(preamble_file)
        overrides["postamble"] = _read_text(postamble_file)
        module_srcs = _parse_srcs(srcs) or None

        loader = ConfigLoader.load(
            paths=[config_file] if config_file else None,
            env_file=env_file,
            overrides=overrides,
        )
        config = loader.pack_config()

        if module_srcs is not None and modules:
            raise click.UsageError("pass module names or --src, not both")
        kwargs = config.pack_kwargs()
        if module_srcs is not None:
            result = datapack_modules(module_srcs=module_srcs, **kwargs)
        else:
            if not config.module_names:
                raise click.UsageError("no modules to pack")
            result = datapack_modules(module_names=config.module_names, **kwargs)
    except Fault as fault:
        _fail(str(fault))
    except OSError as exc:
        _fail(f"Failed to read input: {exc}")

    if json_output:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return
    if result.output is None:
        click.echo(result.content, nl=False)
        return
    if not ctx.obj["quiet"]:
        success(f"  {_CHECK} Packed {len(result.entries)} module(s) into {result.output}")
        if ctx.obj["verbose"]:
            for entry in result.entries:
                dim(f"    {entry.name} ({entry.line_count} lines)")


# ============================================================================
# inspect / show
# ============================================================================

def _open_script(script: str) -> ArchiveReader:
    try:
        reader = ArchiveReader.from_script(script)
        reader.entries()
    except Fault as fault:
        _fail(str(fault))
    return reader


@cli.command("inspect")
@click.argument("script", type=click.Path(exists=True, dir_okay=False))
@click.option("--json-output", is_flag=True, help="Print the table of contents as JSON")
def inspect_cmd(script: str, json_output: bool):
    """
    List the modules packed into SCRIPT.

    Examples:
      datapack inspect app.py
      datapack inspect app.py --json-output
    """
    reader = _open_script(script)
    entries = reader.entries()

    if json_output:
        data = {
            "script": script,
            "archive_offset": reader.offset,
            "archive_start_line": reader.archive_start_line,
            "entries": [e.to_dict() for e in entries],
        }
        click.echo(json.dumps(data, indent=2))
        return

    section(f"Archive of {script}")
    kv("Entries", len(entries))
    kv("Archive offset", reader.offset)
    kv("Archive line", reader.archive_start_line)
    click.echo()
    table(
        ["Name", "Order", "Line offset", "First line", "Bytes"],
        [[e.name, e.order, e.line_offset, e.first_line, e.length] for e in entries],
    )


@cli.command("show")
@click.argument("script", type=click.Path(exists=True, dir_okay=False))
@click.argument("name")
def show_cmd(script: str, name: str):
    """
    Print module NAME packed into SCRIPT.

    NAME may be dotted (a.b) or a TOC key (a/b.py).

    Examples:
      datapack show app.py mypkg.util
    """
    reader = _open_script(script)
    candidates = [resource_key(name), *module_keys(name)]
    try:
        for key in candidates:
            found = reader.lookup(key)
            if found is not None:
                click.echo(found.text, nl=False)
                return
    except Fault as fault:
        _fail(str(fault))
    _fail(f"'{name}' is not packed into {script}")


def main():
    """Entry point for `datapack` command."""
    cli(obj={})


if __name__ == "__main__":
    main()
