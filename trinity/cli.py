"""Trinity CLI: Typer + Rich terminal interface.

Commands: run, thrones, config, rituals.
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from trinity import __version__
from trinity.keys import is_throne_live, load_keys_env
from trinity.providers.registry import load_pipeline_config, load_thrones
from trinity.schemas.config import ExecutionType, GuardPolicy, PipelineConfig
from trinity.schemas.ritual import RitualPayload, RitualStatus

# Load API keys from ~/.trinity/keys.env and .env on startup
load_keys_env()

console = Console()

# ── App and sub-apps ─────────────────────────────────────────────

app = typer.Typer(
    name="trinity",
    help="Three-phase decision rituals sealed by weighted multi-model consensus.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

rituals_app = typer.Typer(
    name="rituals",
    help="Query stored rituals.",
    no_args_is_help=True,
)
app.add_typer(rituals_app, name="rituals")

config_app = typer.Typer(
    name="config",
    help="Show pipeline configuration.",
    no_args_is_help=True,
)
app.add_typer(config_app, name="config")

_SERVICES = ("scoring", "mock", "none")


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"trinity {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False, "--version", "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v",
        help="Log pipeline progress to stderr.",
    ),
) -> None:
    """Trinity: proposal debate, consensus seal, artifact forge."""
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# ── Helpers ──────────────────────────────────────────────────────

def _load_config() -> PipelineConfig:
    """Load pipeline defaults, exit on error."""
    try:
        return load_pipeline_config()
    except Exception as e:
        console.print(f"[red]Error loading config:[/red] {e}")
        raise typer.Exit(1) from None


def _load_roster():
    """Load the throne roster, exit on error."""
    try:
        return load_thrones()
    except Exception as e:
        console.print(f"[red]Error loading thrones:[/red] {e}")
        raise typer.Exit(1) from None


def _verdict_style(verdict: str) -> str:
    return {
        "ACCEPTED": "bold green",
        "REJECTED": "bold red",
        "UNCERTAIN": "bold yellow",
    }.get(verdict.upper(), "")


def _status_text(status: RitualStatus) -> Text:
    if status == RitualStatus.COMPLETE:
        return Text("COMPLETE", style="green")
    if status == RitualStatus.FAILED:
        return Text("FAILED", style="red")
    return Text(status.value.upper(), style="yellow")


def _build_service(name: str):
    from trinity.services import MockBackingService, RealBackingService

    if name == "scoring":
        return RealBackingService()
    if name == "mock":
        return MockBackingService()
    return None


def _read_structured_input(path: str | None) -> dict | None:
    if not path:
        return None
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        console.print(f"[red]Cannot read input file:[/red] {e}")
        raise typer.Exit(1) from None
    if not isinstance(data, dict):
        console.print("[red]Input file must contain a JSON object[/red]")
        raise typer.Exit(1) from None
    return data


# ── trinity run ──────────────────────────────────────────────────

@app.command()
def run(
    question: str = typer.Argument(..., help="The question to put to the ritual"),
    types: list[str] = typer.Option(
        None, "--type", "-t",
        help="Artifact type to generate (video, book, npc, data_process); repeatable",
    ),
    guard_policy: str = typer.Option(
        None, "--guard-policy",
        help="advisory (log guard failures) or blocking (fail the ritual)",
    ),
    service: str = typer.Option(
        "scoring", "--service",
        help="Backing service: scoring, mock, or none (fallback mode)",
    ),
    input_file: str = typer.Option(
        None, "--input", "-i",
        help="JSON file with structured input (workflow nodes, roles)",
    ),
    offline: bool = typer.Option(
        False, "--offline",
        help="Use mock voters for every throne, even with API keys set",
    ),
    no_persist: bool = typer.Option(
        False, "--no-persist",
        help="Do not save the ritual to the database",
    ),
    db: str = typer.Option(
        None, "--db",
        help="Ritual database path (default from config)",
    ),
    as_json: bool = typer.Option(
        False, "--json",
        help="Print the final payload as JSON",
    ),
) -> None:
    """Run a full ritual: propose, seal, execute."""
    from trinity.pipeline import RitualPipeline
    from trinity.voters import create_voters

    config = _load_config()
    thrones = _load_roster()

    updates: dict = {}
    if guard_policy:
        try:
            updates["guard_policy"] = GuardPolicy(guard_policy)
        except ValueError:
            console.print(f"[red]Invalid guard policy:[/red] '{guard_policy}'")
            raise typer.Exit(1) from None
    if types:
        try:
            updates["execution_types"] = [ExecutionType(t) for t in types]
        except ValueError as e:
            console.print(f"[red]Invalid artifact type:[/red] {e}")
            raise typer.Exit(1) from None
    if db:
        updates["ritual_db_path"] = db
    if no_persist:
        updates["persist_rituals"] = False
    if updates:
        config = config.model_copy(update=updates)

    if service not in _SERVICES:
        console.print(f"[red]Invalid service:[/red] '{service}'. Choose {', '.join(_SERVICES)}.")
        raise typer.Exit(1) from None

    structured_input = _read_structured_input(input_file)

    async def _run() -> RitualPayload:
        from trinity.persistence import RitualStore, close_db, init_db

        db_conn = None
        store = None
        if config.persist_rituals:
            db_conn = await init_db(config.ritual_db_path)
            store = RitualStore(db_conn)
        try:
            pipeline = RitualPipeline(
                config,
                service=_build_service(service),
                thrones=thrones,
                voters=create_voters(thrones, offline=offline),
                store=store,
            )
            return await pipeline.run(question, structured_input)
        finally:
            if db_conn is not None:
                await close_db(db_conn)

    payload = asyncio.run(_run())

    if as_json:
        from trinity.persistence import export_json

        typer.echo(export_json(payload))
    else:
        _display_payload(payload)

    if payload.status == RitualStatus.FAILED:
        raise typer.Exit(1)


def _display_payload(payload: RitualPayload) -> None:
    snapshot = payload.decision_snapshot
    consensus = snapshot.get("consensus") or {}

    lines = [f"[bold]Ritual:[/bold] {payload.decision_id}"]
    lines.append(f"[bold]Status:[/bold] {payload.status.value}")
    if consensus:
        verdict = str(consensus.get("verdict", ""))
        style = _verdict_style(verdict)
        lines.append(f"[bold]Verdict:[/bold] [{style}]{verdict}[/{style}]")
        lines.append(f"[bold]Score:[/bold] {consensus.get('normalized_score', 0.0):.3f}")
    lines.append(f"[bold]Confidence:[/bold] {payload.consensus_score:.3f}")
    lines.append(f"[bold]Cost:[/bold] ${payload.cost_breakdown.total_cost_usd:.4f}")
    if payload.error:
        lines.append(f"[bold red]Error:[/bold red] {payload.error}")
    border = "red" if payload.status == RitualStatus.FAILED else "green"
    console.print(Panel("\n".join(lines), title=payload.decision_snapshot.get("question", ""),
                        border_style=border))

    votes = consensus.get("votes") or []
    if votes:
        table = Table(title="Consensus Seal")
        table.add_column("Throne", style="cyan")
        table.add_column("Answer")
        table.add_column("Confidence", justify="right")
        table.add_column("Weight", justify="right")
        table.add_column("Responded", justify="center")
        for v in votes:
            answer = str(v.get("answer", ""))
            table.add_row(
                str(v.get("voter_name") or v.get("voter_id")),
                Text(answer, style=_verdict_style(
                    {"YES": "ACCEPTED", "NO": "REJECTED"}.get(answer, "UNCERTAIN")
                )),
                f"{float(v.get('confidence', 0.0)):.2f}",
                f"{float(v.get('weight', 0.0)):.1f}",
                "yes" if v.get("responded", True) else "no",
            )
        console.print(table)
        for flag in consensus.get("epistemic_frontier", []):
            console.print(f"[dim]▸ {flag}[/dim]")

    artifacts = snapshot.get("artifacts") or []
    if artifacts:
        table = Table(title="Artifacts")
        table.add_column("Type", style="cyan")
        table.add_column("URL")
        table.add_column("Hash", style="dim")
        for a in artifacts:
            table.add_row(a["artifact_type"], a["artifact_url"], a["artifact_hash"][:16])
        console.print(table)

    by_phase = payload.cost_breakdown.by_phase
    if by_phase:
        table = Table(title="Costs by Phase")
        table.add_column("Phase", style="cyan")
        table.add_column("Cost", justify="right")
        for phase, cost in by_phase.items():
            table.add_row(phase or "-", f"${cost:.4f}")
        console.print(table)


# ── trinity thrones ──────────────────────────────────────────────

@app.command()
def thrones() -> None:
    """Show the voter roster and which thrones have API keys."""
    roster = _load_roster()

    table = Table(title="Thrones", show_lines=True)
    table.add_column("ID", justify="right", style="bold cyan")
    table.add_column("Name")
    table.add_column("Model")
    table.add_column("Weight", justify="right")
    table.add_column("Key Env", style="dim")
    table.add_column("Live", justify="center")

    live = 0
    for t in roster:
        is_live = is_throne_live(t)
        live += is_live
        table.add_row(
            str(t.id),
            t.name,
            t.model.display_name or t.model.model,
            f"{t.weight:.1f}",
            t.model.api_key_env or "-",
            "[green]✓[/green]" if is_live else "[dim]mock[/dim]",
        )

    console.print(table)
    total = sum(t.weight for t in roster)
    console.print(f"\n[dim]{len(roster)} thrones, total weight {total:.1f}, {live} live[/dim]")


# ── trinity config ───────────────────────────────────────────────

@config_app.command("show")
def config_show() -> None:
    """Show the effective pipeline configuration."""
    config = _load_config()

    table = Table(title="Pipeline Configuration", show_header=False, show_lines=True)
    table.add_column("Setting", style="bold")
    table.add_column("Value")
    for key, value in config.model_dump(mode="json", exclude={"dispatcher"}).items():
        table.add_row(key, str(value))
    for key, value in config.dispatcher.model_dump(mode="json").items():
        table.add_row(f"dispatcher.{key}", str(value))
    console.print(table)


# ── trinity rituals ──────────────────────────────────────────────

@rituals_app.command("list")
def rituals_list(
    limit: int = typer.Option(20, "--limit", "-n", help="Max rituals to show"),
    status: str = typer.Option(None, "--status", help="Filter by status"),
    db: str = typer.Option(None, "--db", help="Ritual database path"),
) -> None:
    """Show recent rituals."""
    from trinity.persistence import RitualStore, close_db, init_db

    config = _load_config()
    try:
        status_filter = RitualStatus(status) if status else None
    except ValueError:
        console.print(f"[red]Invalid status:[/red] '{status}'")
        raise typer.Exit(1) from None

    async def _list():
        conn = await init_db(db or config.ritual_db_path)
        store = RitualStore(conn)
        summaries = await store.list_rituals(status=status_filter, limit=limit)
        await close_db(conn)
        return summaries

    summaries = asyncio.run(_list())

    if not summaries:
        console.print("[dim]No rituals found.[/dim]")
        return

    table = Table(title=f"Rituals ({len(summaries)} shown)")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Question", max_width=40)
    table.add_column("Status")
    table.add_column("Verdict")
    table.add_column("Confidence", justify="right")
    table.add_column("Cost", justify="right")

    for s in summaries:
        table.add_row(
            s.decision_id.removeprefix("ritual-")[:8],
            s.question_preview[:40],
            _status_text(s.status),
            Text(s.verdict or "-", style=_verdict_style(s.verdict)),
            f"{s.consensus_score:.3f}",
            f"${s.total_cost:.4f}",
        )

    console.print(table)


async def _fetch(decision_id: str, db_path: str) -> RitualPayload | None:
    from trinity.persistence import RitualStore, close_db, init_db

    conn = await init_db(db_path)
    try:
        return await RitualStore(conn).get_ritual(decision_id)
    finally:
        await close_db(conn)


@rituals_app.command("show")
def rituals_show(
    decision_id: str = typer.Argument(..., help="Decision ID or prefix (min 4 chars)"),
    db: str = typer.Option(None, "--db", help="Ritual database path"),
) -> None:
    """Show full ritual details."""
    config = _load_config()
    payload = asyncio.run(_fetch(decision_id, db or config.ritual_db_path))

    if not payload:
        console.print(f"[red]Ritual not found:[/red] {decision_id}")
        raise typer.Exit(1) from None

    _display_payload(payload)
    if payload.notes:
        console.print()
        for note in payload.notes:
            console.print(f"[dim]- {note}[/dim]")


@rituals_app.command("export")
def rituals_export(
    decision_id: str = typer.Argument(..., help="Decision ID or prefix (min 4 chars)"),
    fmt: str = typer.Option(
        "markdown", "--format", "-f",
        help="Export format: json or markdown",
    ),
    db: str = typer.Option(None, "--db", help="Ritual database path"),
) -> None:
    """Export a ritual as JSON or Markdown."""
    from trinity.persistence import export_json, export_markdown

    if fmt not in ("json", "markdown", "md"):
        console.print(f"[red]Invalid format:[/red] '{fmt}'. Choose json or markdown.")
        raise typer.Exit(1) from None

    config = _load_config()
    payload = asyncio.run(_fetch(decision_id, db or config.ritual_db_path))

    if not payload:
        console.print(f"[red]Ritual not found:[/red] {decision_id}")
        raise typer.Exit(1) from None

    if fmt == "json":
        typer.echo(export_json(payload))
    else:
        typer.echo(export_markdown(payload))


@rituals_app.command("delete")
def rituals_delete(
    decision_id: str = typer.Argument(..., help="Decision ID or prefix (min 4 chars)"),
    yes: bool = typer.Option(
        False, "--yes", "-y",
        help="Skip confirmation prompt",
    ),
    db: str = typer.Option(None, "--db", help="Ritual database path"),
) -> None:
    """Delete a ritual from history."""
    if not yes:
        confirm = typer.confirm(
            f"Delete ritual {decision_id}? This cannot be undone."
        )
        if not confirm:
            console.print("[dim]Cancelled.[/dim]")
            return

    from trinity.persistence import RitualStore, close_db, init_db

    config = _load_config()

    async def _delete():
        conn = await init_db(db or config.ritual_db_path)
        store = RitualStore(conn)
        deleted = await store.delete_ritual(decision_id)
        await close_db(conn)
        return deleted

    deleted = asyncio.run(_delete())

    if deleted:
        console.print(f"[green]Ritual deleted:[/green] {decision_id}")
    else:
        console.print(f"[red]Ritual not found:[/red] {decision_id}")
        raise typer.Exit(1) from None
