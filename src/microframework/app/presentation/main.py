# Copyright 2025 Björn Gunnar Bryggman. Licensed under the MIT License.

"""
Main application script for running a bootstrapped service.

This module includes:
- `serve`: Bootstraps the application and serves it until the listener stops.
- `cli`: Command-line entrypoint.
"""

import asyncio
from pathlib import Path

import click
from structlog import stdlib

from microframework.app.domain.models import RunOptions
from microframework.app.infrastructure import config, logging
from microframework.app.infrastructure.bootstrap import Bootstrap

log = stdlib.get_logger(__name__)


async def serve(options: RunOptions) -> None:
    """
    Bootstrap the application and serve it until the listener stops.

    Args:
        - options: Where the application keeps its files.

    Raises:
        - Exception: If an error occurs during application bootstrapping.
    """
    await logging.initialize_logger(config.AppConfig().log_level)
    try:
        bootstrap = Bootstrap(options)
        await bootstrap.run()
    except Exception as error:
        await log.aexception("Error bootstrapping application.", exc_info=error)
        raise
    await bootstrap.http_listener.wait_closed()


@click.command()
@click.argument(
    "base_directory", default=".", type=click.Path(exists=True, file_okay=False, path_type=Path)
)
@click.option("--env", "environment", default=None, help="Environment name, overrides APP_ENV.")
@click.option(
    "--config", "configuration_files", multiple=True, type=click.Path(path_type=Path), help="Configuration file."
)
@click.option(
    "--parameters", "parameters_files", multiple=True, type=click.Path(path_type=Path), help="Parameters file."
)
@click.option(
    "--controllers",
    "controllers_directories",
    multiple=True,
    type=click.Path(file_okay=False, path_type=Path),
    help="Controller directory.",
)
@click.option(
    "--documents",
    "documents_directories",
    multiple=True,
    type=click.Path(file_okay=False, path_type=Path),
    help="Document directory.",
)
@click.option(
    "--subscribers",
    "subscribers_directories",
    multiple=True,
    type=click.Path(file_okay=False, path_type=Path),
    help="Subscriber directory.",
)
def cli(
    base_directory: Path,
    environment: str | None,
    configuration_files: tuple[Path, ...],
    parameters_files: tuple[Path, ...],
    controllers_directories: tuple[Path, ...],
    documents_directories: tuple[Path, ...],
    subscribers_directories: tuple[Path, ...],
) -> None:
    "Run the application found in BASE_DIRECTORY."
    options = RunOptions(
        base_directory=base_directory,
        configuration_files=list(configuration_files) or None,
        parameters_files=list(parameters_files) or None,
        controllers_directories=list(controllers_directories) or None,
        odm_documents_directories=list(documents_directories) or None,
        odm_subscribers_directories=list(subscribers_directories) or None,
        environment=environment,
    )
    asyncio.run(serve(options))


if __name__ == "__main__":
    cli()
