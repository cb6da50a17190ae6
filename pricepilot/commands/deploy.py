"""pricepilot validate / plan / deploy — push a billing model to Stripe."""

from __future__ import annotations

import json
from typing import Any, Dict

from rich.console import Console
from rich.table import Table

from pricepilot.core.billing.deploy import Reconciler
from pricepilot.core.billing.plan import plan_deployment
from pricepilot.core.billing.stripe import create_stripe_client
from pricepilot.core.io import load_model_file
from pricepilot.core.validation import validate_model

console = Console(stderr=True)


def run_validate(*, model_path: str) -> Dict[str, Any]:
    """Validate a model file. Raises ValidationError; returns the normalized model."""
    model = validate_model(load_model_file(model_path))
    console.print(
        f"[green]✓[/green] {model.name}: {len(model.items)} items, model type {model.model_type.value}"
    )
    return model.to_dict()


def run_plan(*, model_path: str, json_output: bool = False) -> Dict[str, Any]:
    """Show the operations a deployment would perform. No provider calls."""
    model = validate_model(load_model_file(model_path))
    plan = plan_deployment(model).to_dict()

    if json_output:
        Console().print_json(json.dumps(plan))
        return plan

    console.print(f"\n[bold]Deployment plan:[/bold] {model.name} ({model.model_type.value})\n")
    tbl = Table(show_lines=False)
    tbl.add_column("Item", style="dim")
    tbl.add_column("Product", style="cyan")
    tbl.add_column("Price")
    tbl.add_column("Meter")
    for product in plan["products_to_create"]:
        ref = product["item_ref"]
        prices = [p for p in plan["prices_to_create"] if p["item_ref"] == ref]
        meters = [m for m in plan["meters_to_create"] if m["item_ref"] == ref]
        tbl.add_row(
            ref,
            product["name"],
            ", ".join(_describe_price(p) for p in prices),
            ", ".join(m["event_name"] for m in meters),
        )
    console.print(tbl)
    return plan


def _describe_price(price: Dict[str, Any]) -> str:
    currency = price["currency"]
    if price.get("tiers"):
        free, paid = price["tiers"][0], price["tiers"][-1]
        desc = f"first {free['up_to']} free, then {paid['unit_amount']} {currency}/unit"
    else:
        desc = f"{price.get('unit_amount', 0)} {currency}"
    recurring = price.get("recurring")
    if recurring:
        desc += f" /{recurring['interval']}"
        if recurring.get("usage_type") == "metered":
            desc += " metered"
    return desc


def run_deploy(*, model_path: str, mock: bool = False) -> Dict[str, Any]:
    """Validate and deploy a model. Raises ValidationError before any remote call."""
    model = load_model_file(model_path)
    client = create_stripe_client(use_mock=mock)
    result = Reconciler(client).deploy(model)

    target = "mock provider" if mock else "Stripe"
    console.print(f"\n[bold]Deployed[/bold] {model.name} to {target}\n")
    console.print(f"  Products: [cyan]{len(result.products_created)}[/cyan]")
    console.print(f"  Prices:   [cyan]{len(result.prices_created)}[/cyan]")
    console.print(f"  Meters:   [cyan]{len(result.meters_created)}[/cyan]")

    if result.errors:
        console.print(f"\n[red bold]{len(result.errors)} error(s):[/red bold]")
        for err in result.errors:
            console.print(f"  {err.product_name} [dim]({err.item_ref}, {err.stage})[/dim]: {err.message}")
    else:
        console.print("\n[green]✓ All items deployed[/green]")
    return result.to_dict()
