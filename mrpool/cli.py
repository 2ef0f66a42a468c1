"""
Command Line Interface for mrpool.
"""
import json
import logging
from typing import Optional

import click
import yaml

from .config import Config, load_config
from .core.errors import MrPoolError
from .core.log import configure_logging
from .core.pipeline import mapreduce
from .samples import wordcount as wc


class ClickEchoHandler(logging.Handler):
    """Writes log records through click, so they follow click's stderr."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            click.echo(self.format(record), err=True)
        except Exception:
            self.handleError(record)


def _configure_logging(level: str):
    """Configures logging for the CLI application."""
    handler = ClickEchoHandler()
    handler.setFormatter(logging.Formatter("%(message)s"))
    handler.set_name("mrpool_cli_handler")
    configure_logging(handler, level.upper())


def _load_config(path: Optional[str]) -> Config:
    try:
        return load_config(path)
    except (MrPoolError, yaml.YAMLError) as e:
        raise click.ClickException(f"invalid config file: {e}")


def _run_mapreduce(text: str, map_fn, reduce_fn, config: Config, threads, backend, blocksize):
    threads = config.setting("mapreduce.threads", threads)
    backend = config.setting("mapreduce.backend", backend)
    blocksize = config.setting("slab.blocksize", blocksize)
    try:
        blocks = wc.slab(text, blocksize)
        return mapreduce(blocks, map_fn, reduce_fn, threads, backend=backend, **config.pool_options(backend))
    except MrPoolError as e:
        raise click.ClickException(str(e))


threads_option = click.option(
    "--threads",
    "-t",
    type=click.IntRange(min=0),
    default=None,
    help="Number of workers to use (0 runs in the main thread). [config: mapreduce.threads]",
)
backend_option = click.option(
    "--backend",
    type=str,
    default=None,
    help="Worker pool backend: 'thread' or 'process'. [config: mapreduce.backend]",
)
blocksize_option = click.option(
    "--blocksize",
    type=click.IntRange(min=1),
    default=None,
    help="Number of input lines per map block. [config: slab.blocksize, default 100]",
)
config_option = click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    help="Path to a YAML configuration file.",
)


@click.group()
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    show_default=True,
    help="Level of the JSON log events written to stderr.",
)
def cli(log_level: str):
    """mrpool command-line interface."""
    _configure_logging(log_level)


@cli.command()
@click.argument("input_file", type=click.File("r"), default="-")
@threads_option
@backend_option
@blocksize_option
@click.option(
    "--top",
    type=click.IntRange(min=0),
    default=None,
    help="Number of words to print, most frequent first; 0 prints all. [config: wordcount.top, default 10]",
)
@config_option
def wordcount(
    input_file,
    threads: Optional[int],
    backend: Optional[str],
    blocksize: Optional[int],
    top: Optional[int],
    config_path: Optional[str],
):
    """
    Count the words of a text.

    INPUT_FILE is the text to read (stdin by default).
    """
    config = _load_config(config_path)
    top = config.setting("wordcount.top", top)

    counts = _run_mapreduce(input_file.read(), wc.map, wc.reduce, config, threads, backend, blocksize)

    for word, count in wc.top_words(counts, top or None):
        click.echo(f"{word}\t{count}")


@cli.command()
@click.argument("map_path", type=str)
@click.argument("reduce_path", type=str)
@click.option(
    "--input-file",
    "input_file",
    type=click.File("r"),
    default="-",
    help="Path to a file to read input from (reads from stdin by default).",
)
@click.option(
    "--output-file",
    "output_file",
    type=click.File("w"),
    default="-",
    help="Path to a file to write output to (writes to stdout by default).",
)
@threads_option
@backend_option
@blocksize_option
@config_option
def run(
    map_path: str,
    reduce_path: str,
    input_file,
    output_file,
    threads: Optional[int],
    backend: Optional[str],
    blocksize: Optional[int],
    config_path: Optional[str],
):
    """
    Run a map-reduce computation over a text.

    MAP_PATH and REDUCE_PATH name the functions to run, e.g.
    'my_project.jobs:map'. The input text is cut into blocks of BLOCKSIZE
    lines keyed by their first line number; each output key is written as
    'key<TAB>json list of values'.
    """
    config = _load_config(config_path)
    results = _run_mapreduce(input_file.read(), map_path, reduce_path, config, threads, backend, blocksize)

    for key, values in results.items():
        output_file.write(f"{key}\t{json.dumps(values, default=str)}\n")


if __name__ == "__main__":
    cli()
