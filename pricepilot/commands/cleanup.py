"""pricepilot cleanup — deactivate duplicate app-managed products."""

from __future__ import annotations

from typing import Any, Dict

from rich.console import Console
from rich.table import Table

from pricepilot.core.billing.deploy import Reconciler
from pricepilot.core.billing.stripe import create_stripe_client

console = Console(stderr=True)


def run(*, apply: bool = False, mock: bool = False) -> Dict[str, Any]:
    """List duplicate products and, with ``apply``, deactivate them."""
    reconciler = Reconciler(create_stripe_client(use_mock=mock))
    actions = reconciler.plan_cleanup()

    if not actions:
        console.print("[green]✓ No duplicate products found[/green]")
        return {"actions": [], "applied": apply}

    tbl = Table(title="Duplicate products", show_lines=False)
    tbl.add_column("Tier", style="cyan")
    tbl.add_column("Deactivate")
    tbl.add_column("Keep", style="green")
    tbl.add_column("Prices", justify="right")
    for action in actions:
        tbl.add_row(
            action.tier_id,
            f"{action.product_name} [dim]{action.product_id}[/dim]",
            action.kept_product_id,
            str(len(action.price_ids)),
        )
    console.print(tbl)

    out: Dict[str, Any] = {"actions": [a.to_dict() for a in actions], "applied": apply}
    if not apply:
        console.print("[dim]Dry run. Re-run with --apply to deactivate.[/dim]")
        return out

    result = reconciler.execute_cleanup(actions)
    console.print(
        f"\n  Deactivated: [cyan]{len(result.deactivated)}[/cyan]  "
        f"Skipped: [yellow]{len(result.skipped)}[/yellow]  "
        f"Errors: [red]{len(result.errors)}[/red]"
    )
    for skip in result.skipped:
        console.print(f"  [yellow]skip[/yellow] {skip['ref']}: {skip['reason']}")
    for err in result.errors:
        console.print(f"  [red]error[/red] {err['ref']}: {err['message']}")
    out["result"] = result.to_dict()
    return out
