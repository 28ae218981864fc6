#!/usr/bin/env python3
"""
Command-line entry point for spaider.

Commands:
  crawl URL   Harvest URL and its subtree, streaming deduplicated Markdown
  config URL  Print the resolved configuration as JSON

Common options:
  --log-level LEVEL   Logging level (DEBUG, INFO, ...); WARNING by default, INFO with --verbose
  --log-file PATH     Also write logs to this file (stderr always)

Crawl options:
  --config PATH       YAML or JSON file with settings; options below override it
  --allow REGEX       Only follow links matching REGEX (repeatable)
  --deny REGEX        Never follow links matching REGEX (repeatable)
  --ext EXT           Permitted extension, "" for none (repeatable)
  --max-depth N       Do not follow links deeper than N
  --sync              Fetch one page at a time; output order becomes reproducible
  --verbose           Log every requested URL
  --output PATH       Write documents to PATH instead of stdout

Example:
  spaider crawl https://docs.python.org/3/library/ --deny '/whatsnew/' --sync > library.md
"""
import asyncio
import json
import sys
from pathlib import Path

import click
from pydantic import ValidationError

from spaider import __version__
from spaider.config import build_config
from spaider.driver import harvest
from spaider.logger import configure

CONTEXT_SETTINGS = dict(help_option_names=["-h", "--help"])


def print_error(message: str):
    click.secho(message, fg='red', err=True)
    sys.exit(1)


CRAWL_OPTIONS = [
    click.argument('start_url'),
    click.option(
        '--config', '-c', 'config_path',
        default=None,
        type=click.Path(exists=True, dir_okay=False, path_type=Path),
        help='YAML or JSON settings file.'
    ),
    click.option('--allow', '-a', 'allow', multiple=True, metavar='REGEX',
                 help='Regex a link must match (repeatable). Default: the start URL subtree.'),
    click.option('--deny', '-d', 'deny', multiple=True, metavar='REGEX',
                 help='Regex that rejects a link (repeatable).'),
    click.option('--ext', '-e', 'extensions', multiple=True, metavar='EXT',
                 help='Permitted file extension (repeatable). Default: "" .html .md .txt .rst'),
    click.option('--max-depth', 'max_depth', type=click.IntRange(min=0), default=None,
                 help='Maximum link depth.'),
    click.option('--concurrency', 'concurrency', type=click.IntRange(min=1), default=None,
                 help='Parallel fetch workers.'),
    click.option('--sync', 'synchronous', is_flag=True,
                 help='Crawl one page at a time for deterministic output.'),
    click.option('--verbose', '-v', 'verbose', is_flag=True,
                 help='Log every requested URL to stderr.'),
]


def crawl_options(func):
    """Options shared by `crawl` and `config`."""
    for decorator in reversed(CRAWL_OPTIONS):
        func = decorator(func)
    return func


def resolve_config(ctx, config_path, **overrides):
    # flags only switch features on; an unset flag keeps the file value
    for flag in ('synchronous', 'verbose'):
        if not overrides.get(flag):
            overrides[flag] = None
    try:
        cfg = build_config(config_path, **overrides)
    except (ValidationError, ValueError, TypeError, OSError) as e:
        print_error(f'Configuration error: {e}')
    if cfg.verbose and ctx.obj.get('log_level') is None:
        configure(level='INFO', log_file=ctx.obj.get('log_file'))
    return cfg


@click.group(context_settings=CONTEXT_SETTINGS)
@click.version_option(__version__, '--version', '-V', message='spaider, version %(version)s')
@click.option(
    '--log-level', 'log_level',
    default=None,
    type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']),
    help='Logging level.'
)
@click.option(
    '--log-file', 'log_file',
    default=None,
    type=click.Path(writable=True, dir_okay=False, path_type=Path),
    help='Also write logs to this file.'
)
@click.pass_context
def cli(ctx, log_level, log_file):
    """Harvest a site subtree as deduplicated Markdown."""
    configure(level=log_level or 'WARNING', log_file=str(log_file) if log_file else None)
    ctx.ensure_object(dict)
    ctx.obj['log_level'] = log_level
    ctx.obj['log_file'] = str(log_file) if log_file else None


@cli.command('crawl', context_settings=CONTEXT_SETTINGS)
@crawl_options
@click.option(
    '--output', '-o', 'output',
    default=None,
    type=click.Path(writable=True, dir_okay=False, path_type=Path),
    help='Write documents to this file instead of stdout.'
)
@click.pass_context
def crawl(ctx, start_url, config_path, output, **overrides):
    """Crawl START_URL and stream deduplicated documents."""
    cfg = resolve_config(ctx, config_path, start_url=start_url, **overrides)
    try:
        if output:
            with output.open('w', encoding='utf-8') as stream:
                stats = asyncio.run(harvest(cfg, stream))
        else:
            stats = asyncio.run(harvest(cfg, sys.stdout))
    except KeyboardInterrupt:
        print_error('Interrupted')
    except OSError as e:
        print_error(f'Crawl failed: {e}')
    if output:
        click.echo(f'{stats.emitted} documents written to {output}', err=True)


@cli.command('config', context_settings=CONTEXT_SETTINGS)
@crawl_options
@click.pass_context
def show_config(ctx, start_url, config_path, **overrides):
    """Print the resolved configuration as JSON."""
    cfg = resolve_config(ctx, config_path, start_url=start_url, **overrides)
    click.echo(json.dumps(cfg.model_dump(), indent=2, ensure_ascii=False))


if __name__ == "__main__":
    cli()
