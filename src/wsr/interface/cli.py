"""wsr CLI: queue, grading, session and config commands."""

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Annotated

import typer

from wsr.application.config import resolve_config
from wsr.domain.models import Rating, ReviewItem, ReviewMode, SessionAction
from wsr.domain.ports import GradeProvider
from wsr.interface._common import VaultOption, _resolve_with_overrides

# ---------------------------------------------------------------------------
# Root app
# ---------------------------------------------------------------------------

app = typer.Typer(
    help="wsr: weighted spaced review for Markdown vaults.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

config_app = typer.Typer(help="Manage wsr configuration.")
app.add_typer(config_app, name="config")

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s:%(name)s:%(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Global callback
# ---------------------------------------------------------------------------


@app.callback()
def main_callback(
    ctx: typer.Context,
    verbose: Annotated[
        int,
        typer.Option(
            "--verbose", "-v", count=True, help="Increase verbosity. Repeat for more detail."
        ),
    ] = 0,
):
    """Global settings for wsr."""
    ctx.ensure_object(dict)
    ctx.obj["verbose_bonus"] = verbose


def _service(ctx: typer.Context, vault: Path | None):
    from wsr.application.factory import get_review_service

    return get_review_service(_resolve_with_overrides(ctx, vault_root=vault))


def _parse_rating(value: str) -> Rating:
    try:
        return Rating.parse(value)
    except (KeyError, ValueError):
        typer.secho(f"Invalid rating '{value}'. Use again/hard/good/easy or 1-4.", fg="red")
        raise typer.Exit(2)


# ---------------------------------------------------------------------------
# Queue commands
# ---------------------------------------------------------------------------


@app.command()
def sync(ctx: typer.Context, vault: VaultOption = None):
    """[bold green]Scan[/bold green] the vault and rebuild the review queue."""

    async def run():
        service = _service(ctx, vault)
        await service.sync()
        typer.echo(
            f"Items: {len(service.items)}  Due: {len(service.queue)}  "
            f"Postponed: {len(service.postponed)}"
        )

    asyncio.run(run())


@app.command("queue")
def queue(
    ctx: typer.Context,
    vault: VaultOption = None,
    limit: Annotated[int | None, typer.Option(help="Show at most N entries.")] = None,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON.")] = False,
):
    """Show the due items ranked by tag priority."""

    async def run():
        service = _service(ctx, vault)
        await service.sync()
        entries = service.queue[:limit] if limit else service.queue

        if json_output:
            typer.echo(
                json.dumps(
                    [
                        {
                            "id": e.item.id,
                            "priority": e.priority,
                            "due": e.item.state.due.isoformat(),
                        }
                        for e in entries
                    ],
                    indent=2,
                )
            )
            return

        if not entries:
            typer.secho("No due items.", fg="green")
            return
        for e in entries:
            typer.echo(f"{e.priority:8.2f}  {e.item.id}")

    asyncio.run(run())


@app.command("next")
def next_item(ctx: typer.Context, vault: VaultOption = None):
    """Print the id of the highest-priority due item."""

    async def run():
        service = _service(ctx, vault)
        await service.sync()
        item = service.next_item()
        if item is None:
            typer.secho("No due items.", fg="green")
            raise typer.Exit(1)
        typer.echo(item.id)

    asyncio.run(run())


@app.command()
def grade(
    ctx: typer.Context,
    item_id: Annotated[str, typer.Argument(help="Item id (vault path without .md).")],
    rating: Annotated[str, typer.Argument(help="again, hard, good, easy (or 1-4).")],
    vault: VaultOption = None,
):
    """Record a review for one item."""
    parsed = _parse_rating(rating)

    async def run():
        from wsr.domain.errors import ItemNotFound

        service = _service(ctx, vault)
        await service.sync()
        try:
            state = await service.record_review(item_id, parsed)
        except ItemNotFound:
            typer.secho(f"Item not found: {item_id}", fg="red")
            raise typer.Exit(1)
        typer.echo(
            f"{item_id}: {state.state.name.lower()}, next due {state.due.isoformat()} "
            f"({state.scheduled_days}d)"
        )

    asyncio.run(run())


@app.command()
def postpone(
    ctx: typer.Context,
    item_id: Annotated[str, typer.Argument(help="Item id to postpone.")],
    undo: Annotated[bool, typer.Option("--undo", help="Remove the item from the postponed set.")] = False,
    vault: VaultOption = None,
):
    """Postpone (bury) an item until the postponed set is cleared."""

    async def run():
        from wsr.domain.errors import ItemNotFound

        service = _service(ctx, vault)
        await service.sync()
        if undo:
            await service.unpostpone(item_id)
            typer.echo(f"Restored {item_id}")
            return
        try:
            await service.postpone(item_id)
        except ItemNotFound:
            typer.secho(f"Item not found: {item_id}", fg="red")
            raise typer.Exit(1)
        typer.echo(f"Postponed {item_id}")

    asyncio.run(run())


@app.command()
def dismiss(
    ctx: typer.Context,
    item_id: Annotated[str, typer.Argument(help="Item id to withdraw from review.")],
    vault: VaultOption = None,
):
    """Withdraw an item: its review tag becomes the dismiss tag."""

    async def run():
        from wsr.domain.errors import ItemNotFound

        service = _service(ctx, vault)
        try:
            await service.dismiss(item_id)
        except ItemNotFound:
            typer.secho(f"Item not found: {item_id}", fg="red")
            raise typer.Exit(1)
        typer.echo(f"Dismissed {item_id}")

    asyncio.run(run())


@app.command()
def extract(
    ctx: typer.Context,
    source_id: Annotated[str, typer.Argument(help="Item the text was taken from.")],
    text: Annotated[str, typer.Argument(help="Selected text.")],
    qa: Annotated[bool, typer.Option("--qa", help="Create a question/answer item.")] = False,
    vault: VaultOption = None,
):
    """Create a new review item from a text selection."""
    from wsr.application.extract_service import ExtractKind
    from wsr.application.factory import get_extract_service
    from wsr.domain.errors import ItemNotFound

    config = _resolve_with_overrides(ctx, vault_root=vault)
    service = get_extract_service(config)
    kind = ExtractKind.QA if qa else ExtractKind.EXTRACT

    try:
        item = asyncio.run(service.extract(source_id, text, kind))
    except ItemNotFound:
        typer.secho(f"Item not found: {source_id}", fg="red")
        raise typer.Exit(1)
    except ValueError as e:
        typer.secho(str(e), fg="red")
        raise typer.Exit(2)
    typer.echo(item.id)


# ---------------------------------------------------------------------------
# Interactive session
# ---------------------------------------------------------------------------


_SESSION_KEYS = {
    "p": SessionAction.POSTPONE,
    "s": SessionAction.SKIP,
    "q": SessionAction.QUIT,
    "quit": SessionAction.QUIT,
}
_PROMPT = "Rating [1=again 2=hard 3=good 4=easy, p=postpone s=skip q=quit]"


class TerminalGradeProvider(GradeProvider):
    """Prompts for a rating on the terminal; 'p' postpones, 's' skips, 'q' ends the session."""

    async def request_grade(self, item: ReviewItem) -> Rating | SessionAction | None:
        path = item.topic_path
        typer.secho(f"\n{item.title or item.id}", bold=True)
        if not path.is_empty:
            typer.echo(f"  deck: {path}")
        while True:
            answer = typer.prompt(_PROMPT)
            action = _SESSION_KEYS.get(answer.strip().lower())
            if action is not None:
                return action
            try:
                return Rating.parse(answer)
            except (KeyError, ValueError):
                typer.secho("Please answer 1-4, p, s or q.", fg="yellow")


@app.command()
def review(
    ctx: typer.Context,
    vault: VaultOption = None,
    cram: Annotated[
        bool, typer.Option("--cram", help="Go through every item without rescheduling.")
    ] = False,
    scope: Annotated[
        str | None,
        typer.Option(
            "--scope", help="Only review one deck (topic path) or the items under a note/folder."
        ),
    ] = None,
    deck_order: Annotated[str | None, typer.Option(help="Deck traversal order.")] = None,
    card_order: Annotated[str | None, typer.Option(help="Card order within a deck.")] = None,
):
    """Run an interactive review session over the deck tree."""
    from wsr.application.factory import get_review_service
    from wsr.application.review_sequencer import SessionState

    config = _resolve_with_overrides(
        ctx, vault_root=vault, deck_order=deck_order, card_order=card_order
    )
    mode = ReviewMode.CRAM if cram else ReviewMode.REVIEW

    async def run():
        service = get_review_service(config)
        await service.sync()
        try:
            sequencer = service.create_sequencer(mode, scope)
        except ValueError as e:
            typer.secho(str(e), fg="red")
            raise typer.Exit(1)
        result = await sequencer.run(TerminalGradeProvider())
        # Items postponed during the session stay buried until the next day
        service.save_postponements()
        return sequencer, result

    sequencer, result = asyncio.run(run())
    status = "complete" if result is SessionState.COMPLETE else "stopped"
    typer.echo(
        f"Session {status}: {len(sequencer.answered)} answered, "
        f"{sequencer.remaining_count} remaining of {sequencer.total_count}"
    )


@app.command()
def tag(
    ctx: typer.Context,
    prefix: Annotated[str, typer.Argument(help="Note id or folder (vault-relative).")],
    tags: Annotated[list[str] | None, typer.Argument(help="Tags to add.")] = None,
    vault: VaultOption = None,
):
    """Add tags to a note or to every note under a folder (default: the review tag)."""
    from wsr.application.utils.text import normalize_tag

    async def run():
        service = _service(ctx, vault)
        wanted = frozenset(normalize_tag(t) for t in tags or [service.review_tag])
        changed = await service.add_tags(prefix, wanted)
        typer.echo(f"Tagged {len(changed)} note(s)")

    asyncio.run(run())


# ---------------------------------------------------------------------------
# Server
# ---------------------------------------------------------------------------


@app.command()
def serve(
    port: Annotated[int, typer.Option(help="Port to bind the server to.")] = 8777,
    host: Annotated[str, typer.Option(help="Host to bind the server to.")] = "127.0.0.1",
    reload: Annotated[bool, typer.Option(help="Enable auto-reload.")] = False,
):
    """Serve the review queue over HTTP."""
    import uvicorn

    uvicorn.run("wsr.server:app", host=host, port=port, reload=reload)


# ---------------------------------------------------------------------------
# Config subgroup
# ---------------------------------------------------------------------------


@config_app.command("show")
def config_show():
    """Display final resolved configuration."""
    config = resolve_config()
    d = {k: str(v) if isinstance(v, Path) else v for k, v in config.model_dump().items()}
    typer.echo(json.dumps(d, indent=2))
