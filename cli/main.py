# cli/main.py
"""Main CLI entry point for Visual CI/CD."""

import logging
import sys

import click
import structlog

from core import __version__


def configure_logging(verbose: bool) -> None:
    """Send structlog output to stderr so generated YAML on stdout stays clean."""
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.DEBUG if verbose else logging.WARNING
        ),
        # Resolve sys.stderr per logger so redirected streams are honoured
        logger_factory=lambda *args: structlog.PrintLogger(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


@click.group()
@click.version_option(version=__version__)
@click.option('--verbose', '-v', is_flag=True, help='Show debug logging on stderr')
@click.pass_context
def cli(ctx: click.Context, verbose: bool):
    """Visual CI/CD - generate pipeline YAML from blocks and run it on GitHub Actions."""
    ctx.ensure_object(dict)
    ctx.obj['verbose'] = verbose
    configure_logging(verbose)


def register_commands():
    """Register all CLI command groups."""
    from cli.commands.pipeline import pipeline
    cli.add_command(pipeline)

    from cli.commands.github import github
    cli.add_command(github)


register_commands()


if __name__ == '__main__':
    cli()
