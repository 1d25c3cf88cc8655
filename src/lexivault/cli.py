"""CLI entry point for Lexivault.

Commands:
    lexivault init        — Create the profile database and full-text index
    lexivault add         — Add a word
    lexivault show        — Show one word
    lexivault delete      — Delete a word (its embeddings go with it)
    lexivault sync-index  — Check and repair the full-text index
    lexivault embed       — Backfill embeddings for all words
    lexivault search      — Semantic search
    lexivault find        — Full-text / hybrid search
    lexivault profile     — Show or change the semantic profile
    lexivault stats       — Show store and index statistics
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from lexivault import __version__

if TYPE_CHECKING:
    from lexivault.semantic.vector_index import SemanticMatch
    from lexivault.storage import Storage

console = Console()


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )
    # The SDK's request logging drowns out progress output
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _open(ctx: click.Context) -> Storage:
    from pydantic import ValidationError

    from lexivault.config import StorageConfig, load_settings
    from lexivault.storage import open_storage

    settings = load_settings(ctx.obj.get("config_path"))
    if ctx.obj.get("profile"):
        try:
            settings.storage = StorageConfig(
                data_dir=settings.storage.data_dir, profile=ctx.obj["profile"]
            )
        except ValidationError as e:
            message = e.errors()[0]["msg"]
            raise click.BadParameter(message, param_hint="--profile") from e
    return open_storage(settings)


def _print_matches(matches: list[SemanticMatch]) -> None:
    table = Table(show_header=True, header_style="bold magenta", box=None)
    table.add_column("Word")
    table.add_column("Definition")
    table.add_column("Similarity", justify="right")
    for m in matches:
        table.add_row(
            m.document.data.get("word", ""),
            m.document.data.get("one_line_desc", ""),
            f"{m.similarity:.0%}",
        )
    console.print(table)


@click.group()
@click.version_option(__version__)
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.option("-c", "--config", type=click.Path(exists=True), help="Config file path")
@click.option("-p", "--profile", default=None, help="Profile (database) to use")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, config: str | None, profile: str | None) -> None:
    """Lexivault — personal vocabulary store with semantic search."""
    _setup_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = Path(config) if config else None
    ctx.obj["profile"] = profile


@cli.command()
@click.pass_context
def init(ctx: click.Context) -> None:
    """Create the profile database and its indexes."""
    storage = _open(ctx)
    try:
        console.print(f"[green]✓[/green] Lexivault ready at {storage.db.db_path}")
        console.print(f"  words:      {storage.documents.count()}")
        console.print(f"  full-text:  {storage.sync_action.value}")
    finally:
        storage.close()


@cli.command()
@click.argument("word")
@click.option("-d", "--desc", default="", help="One-line description")
@click.option("--details", default="", help="Long explanation")
@click.option("-t", "--tag", "tags", multiple=True, help="Tag (repeatable)")
@click.option("-s", "--synonym", "synonyms", multiple=True, help="Synonym (repeatable)")
@click.option("-a", "--antonym", "antonyms", multiple=True, help="Antonym (repeatable)")
@click.option("-r", "--remark", default="", help="Free-text remark")
@click.option("--embed/--no-embed", default=True, help="Embed the new word right away")
@click.pass_context
def add(
    ctx: click.Context,
    word: str,
    desc: str,
    details: str,
    tags: tuple[str, ...],
    synonyms: tuple[str, ...],
    antonyms: tuple[str, ...],
    remark: str,
    embed: bool,
) -> None:
    """Add a word to the vocabulary."""
    from lexivault.semantic.embedder import EmbeddingError, SemanticConfigError
    from lexivault.store.models import Word

    storage = _open(ctx)
    try:
        doc = storage.documents.add_word(
            Word(
                word=word,
                one_line_desc=desc,
                details=details,
                tags=list(tags),
                synonyms=list(synonyms),
                antonyms=list(antonyms),
                remark=remark,
            )
        )
        console.print(f"[green]✓[/green] Added '{word}' ({doc.id})")
        if embed:
            try:
                storage.batch.embed_document(doc.id)
                console.print("  embedded")
            except (EmbeddingError, SemanticConfigError) as e:
                console.print(f"  [yellow]not embedded:[/yellow] {e}")
    finally:
        storage.close()


@cli.command()
@click.argument("doc_id")
@click.pass_context
def show(ctx: click.Context, doc_id: str) -> None:
    """Show a word by id."""
    storage = _open(ctx)
    try:
        doc = storage.documents.get_by_id(doc_id)
        if doc is None or not doc.is_word:
            console.print(f"[red]✗[/red] No word with id {doc_id}")
            sys.exit(1)
        w = doc.as_word()
        console.print(f"\n[bold]{w.word}[/bold]  [dim]{doc.id}[/dim]")
        if w.one_line_desc:
            console.print(f"  {w.one_line_desc}")
        if w.plain_details():
            console.print(f"\n{w.plain_details()}")
        for label, values in (("Tags", w.tags), ("Synonyms", w.synonyms), ("Antonyms", w.antonyms)):
            if values:
                console.print(f"  {label}: {', '.join(values)}")
        if w.remark:
            console.print(f"  Remark: {w.remark}")
        models = [m for m in storage.vectors.stats().models if storage.vectors.exists(doc.id, m)]
        console.print(f"  Embedded with: {', '.join(models) if models else '-'}")
    finally:
        storage.close()


@cli.command()
@click.argument("doc_id")
@click.pass_context
def delete(ctx: click.Context, doc_id: str) -> None:
    """Delete a word and its embeddings."""
    storage = _open(ctx)
    try:
        if storage.documents.delete(doc_id):
            console.print(f"[green]✓[/green] Deleted {doc_id}")
        else:
            console.print(f"[red]✗[/red] No document with id {doc_id}")
            sys.exit(1)
    finally:
        storage.close()


@cli.command("sync-index")
@click.pass_context
def sync_index(ctx: click.Context) -> None:
    """Check the full-text index against the current schema and repair drift."""
    storage = _open(ctx)
    try:
        console.print(f"[green]✓[/green] Full-text index: {storage.sync_action.value}")
        console.print(f"  entries: {storage.lexical.count()} / {storage.documents.count()} words")
    finally:
        storage.close()


@cli.command()
@click.option("--batch-size", default=None, type=int, help="Override batch size from profile")
@click.pass_context
def embed(ctx: click.Context, batch_size: int | None) -> None:
    """Backfill embeddings for every word that has none. Ctrl-C cancels."""
    from rich.progress import BarColumn, MofNCompleteColumn, Progress, TextColumn

    from lexivault.semantic.batch import BatchAlreadyRunningError, BatchOptions, BatchState
    from lexivault.semantic.embedder import SemanticConfigError

    storage = _open(ctx)
    try:
        with Progress(
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            console=console,
        ) as progress:
            task = progress.add_task("Embedding words", total=None)

            def on_progress(processed: int, total: int, page: int, total_pages: int) -> None:
                progress.update(
                    task,
                    completed=processed,
                    total=total,
                    description=f"Embedding words (page {page}/{total_pages})",
                )

            try:
                handle = storage.batch.start(
                    BatchOptions(batch_size=batch_size, on_progress=on_progress)
                )
            except (SemanticConfigError, BatchAlreadyRunningError) as e:
                console.print(f"[red]✗[/red] {e}")
                sys.exit(1)

            try:
                result = handle.result()
            except KeyboardInterrupt:
                handle.cancel()
                progress.update(task, description="Cancelling after current page")
                result = handle.result()

        if result.outcome == BatchState.COMPLETED:
            console.print(
                f"[green]✓[/green] Embedded {result.processed}/{result.total_words} words"
                f" in {result.duration_ms / 1000:.1f}s"
            )
        elif result.outcome == BatchState.CANCELLED:
            console.print(
                f"[yellow]•[/yellow] Cancelled: {result.processed}/{result.total_words} done,"
                f" {result.remaining} remaining. Run again to continue."
            )
        else:
            console.print(
                f"[red]✗[/red] Stopped after {result.processed}/{result.total_words} words:"
                f" {result.error}"
            )
            sys.exit(1)
    finally:
        storage.close()


@cli.command()
@click.argument("query")
@click.option("-n", "--limit", default=None, type=int, help="Maximum results")
@click.option(
    "--threshold", default=None, type=click.FloatRange(0, 1), help="Minimum similarity (0-1)"
)
@click.pass_context
def search(ctx: click.Context, query: str, limit: int | None, threshold: float | None) -> None:
    """Find words by meaning."""
    storage = _open(ctx)
    try:
        with console.status("Searching..."):
            matches = storage.semantic.search(query, limit=limit, threshold=threshold)
        if not matches:
            console.print("[dim]No similar words found.[/dim]")
            return
        _print_matches(matches)
    finally:
        storage.close()


@cli.command()
@click.argument("query")
@click.option("-n", "--limit", default=20, type=int, help="Maximum results")
@click.option("--hybrid", is_flag=True, help="Top up text matches with semantic matches")
@click.pass_context
def find(ctx: click.Context, query: str, limit: int, hybrid: bool) -> None:
    """Find words by text (full-text index)."""
    storage = _open(ctx)
    try:
        table = Table(show_header=True, header_style="bold magenta", box=None)
        table.add_column("Word")
        table.add_column("Definition")
        table.add_column("Match")
        if hybrid:
            for hit in storage.hybrid.search(query, limit=limit):
                table.add_row(
                    hit.document.data.get("word", ""),
                    hit.document.data.get("one_line_desc", ""),
                    hit.source,
                )
        else:
            for m in storage.lexical.search(query, limit=limit):
                table.add_row(
                    m.document.data.get("word", ""),
                    m.document.data.get("one_line_desc", ""),
                    "lexical",
                )
        if table.row_count == 0:
            console.print("[dim]No matches.[/dim]")
            return
        console.print(table)
    finally:
        storage.close()


@cli.command()
@click.option("--model", default=None, help="Embedding model")
@click.option("--provider", default=None, type=click.Choice(["openai", "gemini"]))
@click.option("--endpoint", default=None, help="API base URL")
@click.option("--batch-size", default=None, type=int)
@click.option(
    "--threshold", default=None, type=click.FloatRange(0, 1), help="Similarity threshold (0-1)"
)
@click.option("--enable/--disable", "enabled", default=None)
@click.pass_context
def profile(
    ctx: click.Context,
    model: str | None,
    provider: str | None,
    endpoint: str | None,
    batch_size: int | None,
    threshold: float | None,
    enabled: bool | None,
) -> None:
    """Show the semantic profile, or update it when options are given."""
    from lexivault.store.profiles import SemanticProfile

    storage = _open(ctx)
    try:
        current = storage.profiles.get_active()
        if current is None:
            console.print("[red]✗[/red] No embedding model configured.")
            sys.exit(1)

        updates = {
            "model": model,
            "provider": provider,
            "endpoint": endpoint,
            "batch_size": batch_size,
            "similarity_threshold": threshold,
            "enabled": enabled,
        }
        changes = {k: v for k, v in updates.items() if v is not None}
        if changes:
            current = SemanticProfile.model_validate({**current.model_dump(), **changes})
            storage.profiles.save(current)
            console.print("[green]✓[/green] Profile updated")

        console.print(f"\n[bold]Profile:[/bold] {current.name}")
        console.print(f"  Enabled:   {current.enabled}")
        console.print(f"  Provider:  {current.provider}")
        console.print(f"  Model:     {current.model}")
        console.print(f"  Endpoint:  {current.endpoint or '(default)'}")
        console.print(f"  Width:     {current.canonical_width}")
        console.print(f"  Batch:     {current.batch_size}")
        console.print(f"  Threshold: {current.similarity_threshold}")
        console.print(f"  API key:   {'set' if current.api_key else '[red]missing[/red]'}")
    finally:
        storage.close()


@cli.command()
@click.pass_context
def stats(ctx: click.Context) -> None:
    """Show store and index statistics."""
    storage = _open(ctx)
    try:
        words = storage.documents.count()
        vs = storage.vectors.stats()
        console.print("\n[bold]Lexivault Statistics[/bold]\n")
        console.print(f"[bold]Database:[/bold] {storage.db.db_path}")
        console.print(f"  Words: {words}")
        console.print(f"  Full-text entries: {storage.lexical.count()}")
        console.print("\n[bold]Vector Index:[/bold]")
        console.print(f"  Embeddings: {vs.count}")
        console.print(f"  Average dimension: {vs.average_dimension}")
        console.print(f"  Models: {', '.join(vs.models) if vs.models else '-'}")
    finally:
        storage.close()


if __name__ == "__main__":
    cli()
