"""pricepilot models — manage saved billing models in a local JSONL store."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.table import Table

from pricepilot.core.billing.store import BillingModelStore
from pricepilot.core.io import load_model_file
from pricepilot.core.validation import validate_model

console = Console(stderr=True)


def _open_store(store_path: str) -> BillingModelStore:
    store = BillingModelStore()
    store.configure_persistence(store_path)
    return store


def run_list(*, store_path: str, owner_id: Optional[str] = None) -> List[Dict[str, Any]]:
    models = _open_store(store_path).list(owner_id=owner_id)
    if not models:
        console.print("[dim]No saved models.[/dim]")
        return []

    tbl = Table(title="Billing models", show_lines=False)
    tbl.add_column("ID", style="cyan")
    tbl.add_column("Name")
    tbl.add_column("Type")
    tbl.add_column("Items", justify="right")
    tbl.add_column("Created", style="dim")
    for m in models:
        tbl.add_row(m.id, m.name, m.model_type.value, str(len(m.items)), m.created_at)
    console.print(tbl)
    return [m.to_dict() for m in models]


def run_save(*, store_path: str, model_path: str) -> Dict[str, Any]:
    """Validate a model file and save it. Raises ValidationError."""
    model = validate_model(load_model_file(model_path))
    saved = _open_store(store_path).save(model)
    console.print(f"[green]✓[/green] Saved {saved.name} as [cyan]{saved.id}[/cyan]")
    return saved.to_dict()


def run_delete(*, store_path: str, model_id: str) -> bool:
    deleted = _open_store(store_path).delete(model_id)
    if deleted:
        console.print(f"[green]✓[/green] Deleted {model_id}")
    else:
        console.print(f"[yellow]No model with id {model_id}[/yellow]")
    return deleted
