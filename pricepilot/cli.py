"""PricePilot CLI — Typer app with all subcommands."""

from __future__ import annotations

import json
import os
import traceback
from typing import Optional

import typer
from rich.console import Console

from pricepilot import __version__
from pricepilot.core.errors import ValidationError

console = Console(stderr=True)

EXIT_VALIDATION = 3

app = typer.Typer(
    name="pricepilot",
    help=(
        "PricePilot — billing model classifier and Stripe reconciler.\n\n"
        "Turn pricing spreadsheets into products, prices and meters.\n"
        "Exit codes: 0=OK, 1=ERROR, 3=VALIDATION_FAILED."
    ),
    add_completion=False,
    no_args_is_help=True,
    rich_markup_mode="rich",
    epilog=(
        "Common commands:\n"
        "  pricepilot classify --in pricing.csv\n"
        "  pricepilot plan model.yaml\n"
        "  pricepilot deploy model.yaml --mock\n"
        "  pricepilot cleanup --apply\n"
        "  pricepilot serve --port 8080\n\n"
        f"PricePilot v{__version__}"
    ),
)

models_app = typer.Typer(help="Saved billing model management")
app.add_typer(models_app, name="models")


def _default_store_path() -> str:
    data_dir = os.environ.get("PRICEPILOT_DATA_DIR", "./.pricepilot")
    return os.path.join(data_dir, "models.jsonl")


def _version_callback(value: bool) -> None:
    if value:
        from rich.panel import Panel
        c = Console()
        c.print(Panel(f"[bold]PricePilot CLI[/bold] v{__version__}", border_style="blue"))
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False, "--version", "-v", help="Show version and exit.",
        callback=_version_callback, is_eager=True,
    ),
) -> None:
    """PricePilot — billing model classifier and Stripe reconciler."""
    pass


# ── classify ─────────────────────────────────────────────────────

@app.command()
def classify(
    input_path: str = typer.Option(
        ..., "--in", "-i", help="Pricing data file (.csv, .tsv, .json, .jsonl, .txt)."
    ),
    json_output: bool = typer.Option(False, "--json", help="Output raw JSON."),
    limit: int = typer.Option(0, "--limit", "-n", help="Max rows to read (0=all)."),
    verbose: bool = typer.Option(False, "--verbose", help="Show detailed output."),
) -> None:
    """Guess the billing structure of a pricing file and normalize its rows.

    Example:
      pricepilot classify --in pricing.csv
      pricepilot classify --in plans.json --json
    """
    _run_safe(lambda: _classify_impl(input_path, json_output, limit), verbose=verbose)


def _classify_impl(input_path: str, json_output: bool, limit: int) -> None:
    from pricepilot.commands.classify import run_classify
    run_classify(input_path=input_path, json_output=json_output, limit=limit)


# ── recommend ────────────────────────────────────────────────────

@app.command()
def recommend(
    input_path: str = typer.Option(..., "--in", "-i", help="Pricing data file."),
    json_output: bool = typer.Option(False, "--json", help="Output raw JSON."),
    verbose: bool = typer.Option(False, "--verbose", help="Show detailed output."),
) -> None:
    """Recommend a billing model type from price statistics and naming.

    Example:
      pricepilot recommend --in usage_rates.csv
    """
    _run_safe(lambda: _recommend_impl(input_path, json_output), verbose=verbose)


def _recommend_impl(input_path: str, json_output: bool) -> None:
    from pricepilot.commands.classify import run_recommend
    run_recommend(input_path=input_path, json_output=json_output)


# ── validate / plan / deploy ─────────────────────────────────────

@app.command()
def validate(
    model_path: str = typer.Argument(..., help="Billing model file (.json, .yaml)."),
    verbose: bool = typer.Option(False, "--verbose", help="Show detailed output."),
) -> None:
    """Check a billing model before deployment.

    Exit codes: 0=valid, 3=invalid.

    Example:
      pricepilot validate model.yaml
    """
    _run_safe(lambda: _validate_impl(model_path), verbose=verbose)


def _validate_impl(model_path: str) -> None:
    from pricepilot.commands.deploy import run_validate
    run_validate(model_path=model_path)


@app.command()
def plan(
    model_path: str = typer.Argument(..., help="Billing model file (.json, .yaml)."),
    json_output: bool = typer.Option(False, "--json", help="Output raw JSON."),
    verbose: bool = typer.Option(False, "--verbose", help="Show detailed output."),
) -> None:
    """Show the products, prices and meters a deployment would create.

    Example:
      pricepilot plan model.yaml
      pricepilot plan model.json --json
    """
    _run_safe(lambda: _plan_impl(model_path, json_output), verbose=verbose)


def _plan_impl(model_path: str, json_output: bool) -> None:
    from pricepilot.commands.deploy import run_plan
    run_plan(model_path=model_path, json_output=json_output)


@app.command()
def deploy(
    model_path: str = typer.Argument(..., help="Billing model file (.json, .yaml)."),
    mock: bool = typer.Option(False, "--mock", help="Use the in-memory mock provider."),
    verbose: bool = typer.Option(False, "--verbose", help="Show detailed output."),
) -> None:
    """Validate a billing model and create it on Stripe.

    Needs PRICEPILOT_STRIPE_ENABLED=1 and STRIPE_SECRET_KEY unless --mock.
    Exit codes: 0=all items deployed, 1=some items failed, 3=invalid model.

    Example:
      pricepilot deploy model.yaml --mock
    """
    _run_safe(lambda: _deploy_impl(model_path, mock), verbose=verbose)


def _deploy_impl(model_path: str, mock: bool) -> None:
    from pricepilot.commands.deploy import run_deploy
    result = run_deploy(model_path=model_path, mock=mock)
    if not result["ok"]:
        raise SystemExit(1)


# ── cleanup ──────────────────────────────────────────────────────

@app.command()
def cleanup(
    apply: bool = typer.Option(False, "--apply", help="Deactivate (default is a dry run)."),
    mock: bool = typer.Option(False, "--mock", help="Use the in-memory mock provider."),
    verbose: bool = typer.Option(False, "--verbose", help="Show detailed output."),
) -> None:
    """Find duplicate app-managed products per tier and deactivate the extras.

    Example:
      pricepilot cleanup
      pricepilot cleanup --apply
    """
    _run_safe(lambda: _cleanup_impl(apply, mock), verbose=verbose)


def _cleanup_impl(apply: bool, mock: bool) -> None:
    from pricepilot.commands.cleanup import run
    run(apply=apply, mock=mock)


# ── catalog ──────────────────────────────────────────────────────

@app.command()
def catalog(
    tier: Optional[str] = typer.Option(
        None, "--tier", "-t", help="Print the billing model for one tier."
    ),
    out: Optional[str] = typer.Option(
        None, "--out", "-o", help="Write the tier's billing model to this JSON file."
    ),
) -> None:
    """List the seeded pricing tiers.

    Example:
      pricepilot catalog
      pricepilot catalog --tier starter --out starter.json
    """
    _run_safe(lambda: _catalog_impl(tier, out))


def _catalog_impl(tier: Optional[str], out: Optional[str]) -> None:
    from rich.table import Table

    from pricepilot.core.catalog import TIERS, catalog_model

    if tier:
        try:
            model = catalog_model(tier)
        except KeyError:
            raise ValueError(f"Unknown tier '{tier}'. Known: {', '.join(TIERS)}") from None
        if out:
            from pricepilot.core.io import write_json

            write_json(out, model.to_dict())
            console.print(f"[green]✓[/green] Wrote {model.name} to {out}")
            return
        typer.echo(json.dumps(model.to_dict(), indent=2))
        return

    table = Table(title="Tiers")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Model type")
    table.add_column("Base (cents)", justify="right")
    table.add_column("Included", justify="right")
    table.add_column("Overage ($/unit)", justify="right")
    for t in TIERS.values():
        table.add_row(
            t.id,
            t.name,
            t.model_type.value,
            str(t.monthly_base_cents),
            str(t.usage_limit_transactions or "—"),
            str(t.overage_rate or "—"),
        )
    Console().print(table)


# ── models ───────────────────────────────────────────────────────

@models_app.command("list")
def models_list(
    store: Optional[str] = typer.Option(None, "--store", help="Model store JSONL path."),
    owner: Optional[str] = typer.Option(None, "--owner", help="Only models of this owner."),
) -> None:
    """List saved billing models."""
    _run_safe(lambda: _models_list_impl(store, owner))


def _models_list_impl(store: Optional[str], owner: Optional[str]) -> None:
    from pricepilot.commands.models import run_list
    run_list(store_path=store or _default_store_path(), owner_id=owner)


@models_app.command("save")
def models_save(
    model_path: str = typer.Argument(..., help="Billing model file (.json, .yaml)."),
    store: Optional[str] = typer.Option(None, "--store", help="Model store JSONL path."),
) -> None:
    """Validate and save a billing model."""
    _run_safe(lambda: _models_save_impl(model_path, store))


def _models_save_impl(model_path: str, store: Optional[str]) -> None:
    from pricepilot.commands.models import run_save
    run_save(store_path=store or _default_store_path(), model_path=model_path)


@models_app.command("delete")
def models_delete(
    model_id: str = typer.Argument(..., help="Billing model id."),
    store: Optional[str] = typer.Option(None, "--store", help="Model store JSONL path."),
) -> None:
    """Delete a saved billing model."""
    _run_safe(lambda: _models_delete_impl(model_id, store))


def _models_delete_impl(model_id: str, store: Optional[str]) -> None:
    from pricepilot.commands.models import run_delete
    if not run_delete(store_path=store or _default_store_path(), model_id=model_id):
        raise SystemExit(1)


# ── serve ────────────────────────────────────────────────────────

@app.command()
def serve(
    host: str = typer.Option(
        "127.0.0.1", "--host", help="Host to bind to (default: 127.0.0.1)."
    ),
    port: int = typer.Option(8080, "--port", "-p", help="Port to listen on."),
    allow_nonlocal: bool = typer.Option(
        False, "--allow-nonlocal",
        help="Allow binding to non-localhost addresses (use with caution).",
    ),
    reload: bool = typer.Option(False, "--reload", help="Enable auto-reload for development."),
    mock: bool = typer.Option(False, "--mock", help="Serve with the in-memory mock provider."),
    verbose: bool = typer.Option(False, "--verbose", help="Show detailed output."),
) -> None:
    """Start the local HTTP API server.

    Binds to 127.0.0.1 by default. Use --allow-nonlocal to override.

    Example:
      pricepilot serve
      pricepilot serve --port 8099 --mock
    """
    _run_safe(
        lambda: _serve_impl(host, port, allow_nonlocal, reload, mock),
        verbose=verbose,
    )


def _serve_impl(host: str, port: int, allow_nonlocal: bool, reload: bool, mock: bool) -> None:
    from pricepilot.core.api.server import start_server
    from pricepilot.core.api.settings import load_settings

    overrides = {"use_mock_stripe": True} if mock else {}
    settings = load_settings(bind=host, port=port, allow_nonlocal=allow_nonlocal, **overrides)
    start_server(host=host, port=port, allow_nonlocal=allow_nonlocal, reload=reload, settings=settings)


# ── version ──────────────────────────────────────────────────────

@app.command()
def version() -> None:
    """Show PricePilot version, Python version, and platform."""
    import platform

    from rich.table import Table

    table = Table(show_header=False, border_style="blue", title="PricePilot", title_style="bold")
    table.add_column("Key", style="dim")
    table.add_column("Value")

    table.add_row("Version", __version__)
    table.add_row("Python", platform.python_version())
    table.add_row("Platform", f"{platform.system()} {platform.machine()}")

    c = Console()
    c.print(table)


# ── Helpers ──────────────────────────────────────────────────────

def _run_safe(fn, verbose: bool = False) -> None:
    """Run a function with clean error handling."""
    try:
        fn()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted.[/yellow]")
        raise SystemExit(130)
    except ValidationError as e:
        console.print(f"\n[red bold]Invalid billing model:[/red bold] {e}")
        raise SystemExit(EXIT_VALIDATION)
    except Exception as e:
        console.print(f"\n[red bold]Error:[/red bold] {e}")
        if verbose:
            console.print(traceback.format_exc())
        else:
            console.print("[dim]Run with --verbose for full traceback.[/dim]")
        raise SystemExit(1)


if __name__ == "__main__":
    app()
