"""CLI for layer-cache."""

import json
import logging
from pathlib import Path
from typing import Optional

import typer
import yaml
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from .config import CacheSettings, load_settings
from .errors import ConfigError, LayerCacheError, TransferError
from .fingerprint import BuildDescription
from .layout import EntryLayout
from .manifest import ImageManifest, blob_name
from .policy import FilePolicyProvider
from .providers import RemoteObjectProvider
from .storage import make_object_store
from .transfer import ContainersImageStore
from .utils import humanize_size


app = typer.Typer(help="""\
Build-layer cache. Derive cache keys for build steps and move cache
entries between the local mirror and the remote object store.""")

console = Console()


class _DetachedTransfer:
    """Stand-in for commands that never materialize images."""

    def copy_image(self, policy_context, dest, src, token=None) -> None:
        raise TransferError("no image transfer engine available from the CLI")


@app.callback()
def main_options(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Configure logging for all commands."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _load_settings(config: Optional[Path]) -> CacheSettings:
    try:
        return load_settings(config)
    except ConfigError as e:
        console.print(f"[red]✗[/red] {e}")
        raise typer.Exit(1)


def _remote_provider(settings: CacheSettings) -> RemoteObjectProvider:
    try:
        store = make_object_store(settings.remote)
    except (ValueError, NotImplementedError) as e:
        console.print(f"[red]✗[/red] {e}")
        raise typer.Exit(1)
    if store is None:
        console.print("[red]✗[/red] No remote store configured (set remote.provider)")
        raise typer.Exit(1)
    return RemoteObjectProvider(
        image_store=ContainersImageStore(),
        policy_provider=FilePolicyProvider(),
        transfer=_DetachedTransfer(),
        mirror_root=settings.mirror_dir,
        object_store=store,
        prefix=settings.remote.prefix,
        system_context=settings.system,
    )


@app.command()
def key(
    build_file: Path = typer.Argument(..., help="YAML or JSON build description"),
):
    """Derive the cache key for a build step."""
    try:
        data = yaml.safe_load(build_file.read_text())
        description = BuildDescription.model_validate(data)
    except (OSError, yaml.YAMLError, ValidationError) as e:
        console.print(f"[red]✗[/red] Cannot read build description {build_file}: {e}")
        raise typer.Exit(1)
    typer.echo(description.cache_key())


@app.command()
def inspect(
    key: str = typer.Argument(..., help="Cache key"),
    mirror: bool = typer.Option(False, "--mirror", help="Inspect the remote mirror instead of the local cache"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Config file"),
):
    """Show the image id and layers of a cache entry."""
    settings = _load_settings(config)
    layout = EntryLayout(settings.mirror_dir if mirror else settings.local_dir)

    try:
        if not layout.has_entry(key):
            console.print(f"[yellow]No entry for {key}[/yellow]")
            raise typer.Exit(1)
        manifest_path = layout.manifest_path(key)
        image_id = layout.read_image_id(key) if layout.image_id_path(key).exists() else ""
        manifest = ImageManifest.load(manifest_path, key=key) if manifest_path.exists() else None
    except (ValueError, LayerCacheError) as e:
        console.print(f"[red]✗[/red] {e}")
        raise typer.Exit(1)

    console.print(f"[bold]Entry:[/bold]    {layout.key_dir(key)}")
    console.print(f"[bold]Image ID:[/bold] {image_id or '[red](missing)[/red]'}")
    if manifest is None:
        console.print("[red]manifest.json missing[/red]")
        raise typer.Exit(1)

    table = Table(title="Layers")
    table.add_column("Digest", style="cyan")
    table.add_column("Media type")
    table.add_column("Size", justify="right")
    table.add_column("Blob")
    for layer in manifest.layers:
        try:
            present = layout.blob_path(key, blob_name(layer.digest)).exists()
            status = "[green]present[/green]" if present else "[red]missing[/red]"
        except ValueError:
            status = "[red]malformed digest[/red]"
        table.add_row(layer.digest, layer.mediaType, humanize_size(layer.size), status)
    console.print(table)


@app.command()
def sync(
    key: str = typer.Argument(..., help="Cache key"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Config file"),
):
    """Synchronize an entry from the remote store into the local mirror."""
    provider = _remote_provider(_load_settings(config))
    try:
        found = provider.synchronize(key)
    except (ValueError, LayerCacheError) as e:
        console.print(f"[red]✗[/red] {e}")
        raise typer.Exit(1)
    if not found:
        console.print(f"[yellow]No remote entry for {key}[/yellow]")
        raise typer.Exit(1)
    console.print(f"[green]✓[/green] {key} available in {provider.mirror_root}")


@app.command()
def publish(
    key: str = typer.Argument(..., help="Cache key"),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Config file"),
):
    """Upload a local mirror entry to the remote store."""
    provider = _remote_provider(_load_settings(config))
    try:
        count = provider.publish(key)
    except (ValueError, LayerCacheError) as e:
        console.print(f"[red]✗[/red] {e}")
        raise typer.Exit(1)
    console.print(f"[green]✓[/green] Published {key} ({count} objects)")


@app.command("config")
def show_config(
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Config file"),
):
    """Print the effective configuration (secrets masked)."""
    settings = _load_settings(config)
    data = settings.model_dump(mode="json")
    for field in ("access_key", "secret_key", "connection_string"):
        if data["remote"].get(field):
            data["remote"][field] = "****"
    console.print_json(json.dumps(data))


def main():
    """Entry point for the layer-cache command."""
    app()


if __name__ == "__main__":
    main()
