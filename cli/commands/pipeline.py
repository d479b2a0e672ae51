# cli/commands/pipeline.py
"""Pipeline commands: generate, validate and watch block graphs."""

import asyncio
import sys
from pathlib import Path
from typing import Callable, Optional

import click
import structlog
import watchdog.events
import watchdog.observers

from core.generator.engine import DEFAULT_HEADER, PipelineGenerator, PipelineValidationError
from core.visual.debounce import DebouncedGenerator
from core.visual.flow import BlockGraphError, load_block_graph, validate_pipeline
from core.visual.nodes import NodeCategory, NodeLibrary

logger = structlog.get_logger(__name__)


def _load(blocks_file: Path):
    try:
        return load_block_graph(blocks_file)
    except BlockGraphError as e:
        raise click.ClickException(str(e))


def _write(text: str, output: Optional[Path]) -> None:
    if output is None:
        click.echo(text, nl=False)
        return
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(text, encoding='utf-8')


@click.group()
def pipeline():
    """Generate and check pipeline YAML from a block graph."""
    pass


@pipeline.command()
@click.argument('blocks_file', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('--output', '-o', type=click.Path(dir_okay=False, path_type=Path),
              help='Write YAML here instead of stdout')
@click.option('--strict', is_flag=True, help='Fail on duplicate jobs or unknown needs')
@click.option('--header/--no-header', default=True, help='Prepend the generated-file banner')
def generate(blocks_file: Path, output: Optional[Path], strict: bool, header: bool):
    """Generate pipeline YAML from a saved block graph."""
    root = _load(blocks_file)
    generator = PipelineGenerator(strict=strict, header=DEFAULT_HEADER if header else None)

    try:
        text = generator.generate(root)
    except PipelineValidationError as e:
        for error in e.errors:
            click.echo(f"❌ {error}", err=True)
        sys.exit(1)

    _write(text, output)
    if output is not None:
        click.echo(f"✅ Pipeline written to {output}", err=True)


@pipeline.command()
@click.argument('blocks_file', type=click.Path(exists=True, dir_okay=False, path_type=Path))
def validate(blocks_file: Path):
    """Check a block graph for duplicate jobs and dangling needs."""
    root = _load(blocks_file)
    if root is None:
        click.echo("⚠️  No pipeline block found")
        return

    errors = validate_pipeline(root)
    if errors:
        click.echo(f"❌ {len(errors)} problem(s) in pipeline '{root.name}':")
        for error in errors:
            click.echo(f"   - {error}")
        sys.exit(1)

    click.echo(f"✅ Pipeline '{root.name}' is valid ({len(root.jobs)} top-level job block(s))")


class BlockFileHandler(watchdog.events.FileSystemEventHandler):
    """Forward changes of one file to the event loop.

    Watchdog calls back from its observer thread, so ``on_change`` is
    scheduled with ``call_soon_threadsafe``.
    """

    def __init__(self, path: Path, loop: asyncio.AbstractEventLoop, on_change: Callable[[], None]):
        self.path = path.resolve()
        self.loop = loop
        self.on_change = on_change

    def _notify(self, event_path: str) -> None:
        if Path(event_path).resolve() == self.path:
            self.loop.call_soon_threadsafe(self.on_change)

    def on_created(self, event):
        if not event.is_directory:
            self._notify(event.src_path)

    def on_modified(self, event):
        if not event.is_directory:
            self._notify(event.src_path)

    def on_moved(self, event):
        # Editors often save by renaming a temp file over the original
        if not event.is_directory:
            self._notify(event.dest_path)


async def watch_file(blocks_file: Path, output: Optional[Path],
                     stop: Optional[asyncio.Event] = None,
                     delay: Optional[float] = None) -> DebouncedGenerator:
    """Regenerate ``output`` whenever ``blocks_file`` changes, until ``stop`` is set."""
    stop = stop or asyncio.Event()

    def emit(text: str) -> None:
        _write(text, output)
        click.echo("🔄 Pipeline regenerated", err=True)

    debouncer = DebouncedGenerator(emit, delay=delay, generator=PipelineGenerator(header=DEFAULT_HEADER))

    def reload() -> None:
        try:
            debouncer.submit(load_block_graph(blocks_file))
        except BlockGraphError as e:
            # Half-saved files are common while editing
            logger.warning("watch_load_failed", path=str(blocks_file), error=str(e))

    handler = BlockFileHandler(blocks_file, asyncio.get_running_loop(), reload)
    observer = watchdog.observers.Observer()
    observer.schedule(handler, str(blocks_file.resolve().parent), recursive=False)

    reload()
    observer.start()
    logger.info("file_watcher_started", path=str(blocks_file))
    try:
        await stop.wait()
        await debouncer.flush()
    finally:
        observer.stop()
        observer.join()
        debouncer.close()
        logger.info("file_watcher_stopped", path=str(blocks_file))
    return debouncer


@pipeline.command()
@click.argument('blocks_file', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('--output', '-o', type=click.Path(dir_okay=False, path_type=Path),
              help='Write YAML here instead of stdout')
def watch(blocks_file: Path, output: Optional[Path]):
    """Regenerate YAML each time the block graph file changes (Ctrl+C to stop)."""
    click.echo(f"👀 Watching {blocks_file}", err=True)
    try:
        asyncio.run(watch_file(blocks_file, output))
    except KeyboardInterrupt:
        click.echo("\n👋 Stopped watching", err=True)


@pipeline.command()
@click.option('--category', '-c', type=click.Choice([c.value for c in NodeCategory]),
              help='Only list one category')
@click.option('--search', '-s', help='Only list blocks whose id, name or description matches')
def blocks(category: Optional[str], search: Optional[str]):
    """List the blocks available in the editor palette."""
    library = NodeLibrary()
    categories = [NodeCategory(category)] if category else list(NodeCategory)

    listed = 0
    for cat in categories:
        if search:
            node_types = library.search_node_types(search, category=cat)
        else:
            node_types = library.get_node_types_by_category(cat)
        if not node_types:
            continue
        listed += len(node_types)
        click.echo(f"\n📦 {cat.value}")
        for node_type in node_types:
            click.echo(f"  {node_type.id:<12} {node_type.description}")
            for prop in node_type.config_schema.values():
                required = " (required)" if prop.required else ""
                click.echo(f"      {prop.name}: {prop.type}{required}")

    if search and not listed:
        click.echo(f"⚠️  No blocks match '{search}'")
