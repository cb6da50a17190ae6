"""pricepilot classify / recommend — inspect a pricing data file."""

from __future__ import annotations

import json
from typing import Any, Dict

from rich.console import Console
from rich.table import Table

from pricepilot.core.classify import classify
from pricepilot.core.readers import read_rows
from pricepilot.core.recommend import recommend

console = Console(stderr=True)


def run_classify(*, input_path: str, json_output: bool = False, limit: int = 0) -> Dict[str, Any]:
    """Classify a pricing file and display the result. Returns the result dict."""
    data = read_rows(input_path, limit=limit or None)
    result = classify(data.rows, data.format).to_dict()

    if json_output:
        Console().print_json(json.dumps(result))
        return result

    console.print(f"\n[bold]Classification:[/bold] {input_path}\n")
    console.print(f"  Rows: [cyan]{data.row_count}[/cyan] ({data.format})")
    console.print(f"  Structure: [cyan]{result['structure']}[/cyan]")
    console.print(f"  Confidence: [cyan]{result['confidence']}[/cyan]")
    console.print(f"  Suggested model: [cyan]{result['suggested_model_type']}[/cyan]")
    for pattern in result["patterns"]:
        console.print(f"  • {pattern}")

    if result["items"]:
        tbl = Table(title="Provisional Items", show_lines=False)
        tbl.add_column("ID", style="dim")
        tbl.add_column("Product", style="cyan")
        tbl.add_column("Kind")
        tbl.add_column("Price (minor)", justify="right")
        tbl.add_column("Event / Interval")
        for item in result["items"]:
            tbl.add_row(
                item["id"],
                item["product_name"],
                item["billing_kind"],
                str(item["price_minor_units"]),
                item.get("event_name") or item.get("interval") or "",
            )
        console.print()
        console.print(tbl)
    return result


def run_recommend(*, input_path: str, json_output: bool = False) -> Dict[str, Any]:
    """Recommend a billing model for a pricing file. Returns the recommendation dict."""
    data = read_rows(input_path)
    rec = recommend(data.rows).to_dict()

    if json_output:
        Console().print_json(json.dumps(rec))
        return rec

    console.print(f"\n[bold]Recommendation:[/bold] {input_path}\n")
    console.print(f"  Model type: [cyan]{rec['model_type']}[/cyan]")
    console.print(f"  Confidence: [cyan]{rec['confidence']}[/cyan]")
    console.print(f"  Strategy: [cyan]{rec['metering_strategy']}[/cyan]")
    console.print(f"  {rec['reasoning']}")
    stats = rec["price_stats"]
    console.print(
        f"  Prices: avg {stats['avg']:.4f}  min {stats['min']:.4f}  "
        f"max {stats['max']:.4f}  variance {stats['variance']:.4f}"
    )
    for pattern in rec["patterns"]:
        console.print(f"  • {pattern}")
    return rec
