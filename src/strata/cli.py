#!/usr/bin/env python3
"""
strata CLI - inspect, query, validate and watch layered configuration
"""

import importlib
import json
import os
import signal
import sys
import threading
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Tuple

import click
import yaml
from rich.console import Console
from rich.table import Table
from rich.text import Text

from strata._version import __version__
from strata.config.coercion import format_duration
from strata.config.manager import ConfigManager
from strata.config.remote import RemoteProvider
from strata.core.exceptions import StrataError
from strata.core.logging import SensitiveDataMasker, configure_logging, logger
from strata.core.utils import retry_call

console = Console()

GET_TYPES = {
    "raw": "get",
    "string": "get_string",
    "int": "get_int",
    "float": "get_float",
    "bool": "get_bool",
    "duration": "get_duration",
    "time": "get_time",
    "list": "get_string_slice",
    "map": "get_string_map",
}


def parse_default(ctx: click.Context, param: click.Parameter, values: Tuple[str, ...]) -> Dict[str, Any]:
    """Parse repeated key=value options; values are read as YAML scalars."""
    defaults: Dict[str, Any] = {}
    for item in values:
        key, sep, raw = item.partition("=")
        if not sep or not key.strip():
            raise click.BadParameter(f"expected key=value, got '{item}'")
        try:
            defaults[key.strip()] = yaml.safe_load(raw) if raw else ""
        except yaml.YAMLError:
            defaults[key.strip()] = raw
    return defaults


def import_schema(ref: str) -> Any:
    """Resolve 'package.module:ClassName'."""
    module_name, sep, attr = ref.partition(":")
    if not sep or not attr:
        raise click.BadParameter(f"expected module:Class, got '{ref}'")
    try:
        module = importlib.import_module(module_name)
        return getattr(module, attr)
    except (ImportError, AttributeError) as e:
        raise click.BadParameter(f"cannot import schema '{ref}': {e}")


def _jsonable(value: Any) -> Any:
    if isinstance(value, timedelta):
        return format_duration(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def _fail(error: StrataError) -> None:
    click.echo(click.style(f"✗ {error.__class__.__name__}: {error}", fg="red"), err=True)
    for suggestion in error.suggestions:
        click.echo(f"  Suggestion: {suggestion}", err=True)
    sys.exit(1)


def source_options(func):
    """Options shared by every command that builds a manager."""
    options = [
        click.argument("config", required=False, type=click.Path(dir_okay=False)),
        click.option("--env-prefix", default="", help="Prefix of overriding environment variables"),
        click.option(
            "-d",
            "--default",
            "defaults",
            multiple=True,
            callback=parse_default,
            help="Default value as key=value (repeatable)",
        ),
        click.option("--config-type", help="yaml, json or toml (default: from extension)"),
        click.option("--remote-type", help="Remote provider type (http, https, consul)"),
        click.option("--remote-endpoint", help="Remote provider endpoint"),
        click.option("--remote-path", default="", help="Remote configuration path"),
        click.option("--timeout", default=30.0, show_default=True, help="Remote load timeout in seconds"),
        click.option("--retries", default=1, show_default=True, help="Load attempts for retryable failures"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def build_manager(
    config: Optional[str],
    env_prefix: str,
    defaults: Dict[str, Any],
    config_type: Optional[str],
    remote_type: Optional[str],
    remote_endpoint: Optional[str],
    remote_path: str,
    timeout: float,
    schema: Any = None,
    watch: bool = False,
    poll_interval: float = 10.0,
) -> ConfigManager:
    remote = None
    if remote_type or remote_endpoint:
        if not (remote_type and remote_endpoint):
            raise click.UsageError("--remote-type and --remote-endpoint go together")
        remote = RemoteProvider(type=remote_type, endpoint=remote_endpoint, path=remote_path)
    elif not config and not defaults:
        raise click.UsageError("pass a CONFIG file, a remote source or at least one --default")

    return ConfigManager(
        config,
        env_prefix=env_prefix,
        defaults=defaults,
        config_type=config_type,
        remote=remote,
        remote_timeout=timeout,
        schema=schema,
        watch=watch,
        poll_interval=poll_interval,
    )


def load_with_retries(manager: ConfigManager, retries: int) -> None:
    retry_call(manager.load, max_attempts=max(retries, 1), logger=logger.child("cli"))


def render_settings(manager: ConfigManager, show_sources: bool) -> None:
    masker = SensitiveDataMasker()
    table = Table(title="Configuration", show_lines=False)
    table.add_column("Key", style="cyan")
    table.add_column("Value")
    if show_sources:
        table.add_column("Source", style="dim")

    for key in manager.all_keys():
        value = manager.get(key)
        shown = masker.MASK if masker.is_sensitive(key) and value not in (None, "") else value
        row = [key, Text(json.dumps(_jsonable(shown), default=str))]
        if show_sources:
            row.append(manager.source_of(key) or "")
        table.add_row(*row)
    console.print(table)


@click.group()
@click.version_option(version=__version__, prog_name="strata")
@click.option(
    "--log-level",
    default="WARNING",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Log level of the stderr sink",
)
def cli(log_level: str):
    """
    strata - layered application configuration

    Merges defaults, a config file or remote source, and environment variables.
    """
    configure_logging(level=log_level, enqueue=False)


@cli.command()
@source_options
@click.option("--sources", is_flag=True, help="Show which layer supplies each key")
@click.option("--json", "as_json", is_flag=True, help="Print the merged settings as JSON")
def show(config, env_prefix, defaults, config_type, remote_type, remote_endpoint, remote_path,
         timeout, retries, sources, as_json):
    """Print the merged configuration (sensitive values masked)"""
    try:
        with build_manager(config, env_prefix, defaults, config_type, remote_type,
                           remote_endpoint, remote_path, timeout) as manager:
            load_with_retries(manager, retries)
            if as_json:
                settings = SensitiveDataMasker().mask_settings(manager.all_settings())
                click.echo(json.dumps(settings, indent=2, sort_keys=True, default=str))
            else:
                render_settings(manager, sources)
    except StrataError as e:
        _fail(e)


@cli.command()
@click.argument("key")
@source_options
@click.option(
    "--type", "as_type", default="raw", type=click.Choice(sorted(GET_TYPES)), help="Typed accessor"
)
@click.option("--strict", is_flag=True, help="Exit with 1 when the key is not set")
def get(key, config, env_prefix, defaults, config_type, remote_type, remote_endpoint,
        remote_path, timeout, retries, as_type, strict):
    """Print the value of one dotted KEY"""
    try:
        with build_manager(config, env_prefix, defaults, config_type, remote_type,
                           remote_endpoint, remote_path, timeout) as manager:
            load_with_retries(manager, retries)
            if strict:
                manager.require(key)
            value = getattr(manager, GET_TYPES[as_type])(key)
    except StrataError as e:
        _fail(e)
        return

    value = _jsonable(value)
    if isinstance(value, (dict, list)):
        click.echo(json.dumps(value, default=str))
    elif isinstance(value, bool):
        click.echo("true" if value else "false")
    elif value is None:
        click.echo("")
    else:
        click.echo(str(value))


@cli.command()
@source_options
@click.option("--schema", "schema_ref", required=True, help="Schema as module:Class")
def check(config, env_prefix, defaults, config_type, remote_type, remote_endpoint, remote_path,
          timeout, retries, schema_ref):
    """Load the configuration and validate it against a schema"""
    schema = import_schema(schema_ref)
    try:
        with build_manager(config, env_prefix, defaults, config_type, remote_type,
                           remote_endpoint, remote_path, timeout, schema=schema) as manager:
            load_with_retries(manager, retries)
    except StrataError as e:
        _fail(e)
        return
    click.echo(click.style(f"✓ Configuration is valid for {schema_ref}", fg="green"))


@cli.command()
@source_options
@click.option("--poll-interval", default=10.0, show_default=True, help="Remote polling interval")
def watch(config, env_prefix, defaults, config_type, remote_type, remote_endpoint, remote_path,
          timeout, retries, poll_interval):
    """Print the configuration on every change until interrupted"""
    stop = threading.Event()
    try:
        manager = build_manager(config, env_prefix, defaults, config_type, remote_type,
                                remote_endpoint, remote_path, timeout, watch=True,
                                poll_interval=poll_interval)
        load_with_retries(manager, retries)
    except StrataError as e:
        _fail(e)
        return

    def on_change() -> None:
        console.print(f"[bold cyan]Configuration changed at {datetime.now():%H:%M:%S}[/bold cyan]")
        render_settings(manager, show_sources=False)

    def on_error(error: Exception) -> None:
        console.print(f"[bold red]✗ Reload failed: {error}[/bold red]")

    with manager:
        render_settings(manager, show_sources=False)
        try:
            manager.watch(stop, on_change, on_error=on_error)
        except StrataError as e:
            _fail(e)
            return
        signal.signal(signal.SIGTERM, lambda *_: stop.set())
        console.print("[dim]Watching for changes, Ctrl+C to stop[/dim]")
        try:
            while not stop.wait(0.5):
                pass
        except KeyboardInterrupt:
            stop.set()


def main():
    """Main entry point"""
    try:
        cli()
    except KeyboardInterrupt:
        click.echo("\nOperation cancelled by user.")
        sys.exit(0)
    except Exception as e:
        click.echo(click.style(f"Error: {e}", fg="red"))
        if os.environ.get('STRATA_DEBUG'):
            import traceback

            traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()
