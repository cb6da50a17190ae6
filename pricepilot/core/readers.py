"""Pricing data readers for CSV, JSON, JSONL, and plain text.

Dispatches by file extension.  Every reader returns string-keyed rows that
classify() and recommend() accept unchanged.
"""

from __future__ import annotations

import csv
import json
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pricepilot.core.money import parse_amount, to_minor_units


@dataclass
class ReadResult:
    """Result of reading a pricing data file."""

    rows: List[Dict[str, Any]]
    format: str  # "csv", "json", "text"
    source_path: str
    columns: List[str]
    provenance: Dict[str, Any] = field(default_factory=dict)

    @property
    def row_count(self) -> int:
        return len(self.rows)


# ── Abstract reader ───────────────────────────────────────────────


class PricingReader(ABC):
    """Base class for pricing data readers."""

    extensions: tuple  # file extensions this reader handles

    def can_read(self, path: Path) -> bool:
        return path.suffix.lower() in self.extensions

    @abstractmethod
    def read(self, path: Path, *, limit: Optional[int] = None) -> ReadResult: ...


# ── CSV reader ────────────────────────────────────────────────────


class CsvReader(PricingReader):
    extensions = (".csv", ".tsv")

    def read(self, path: Path, *, limit: Optional[int] = None) -> ReadResult:
        delimiter = "\t" if path.suffix.lower() == ".tsv" else ","
        rows: List[Dict[str, Any]] = []

        with open(path, "r", encoding="utf-8-sig", newline="") as f:
            reader = csv.DictReader(f, delimiter=delimiter)
            columns = list(reader.fieldnames or [])
            for i, row in enumerate(reader):
                if limit is not None and i >= limit:
                    break
                # Short rows yield None values, long rows a None key.
                rows.append({k: v for k, v in row.items() if k is not None})

        return ReadResult(
            rows=rows,
            format="csv",
            source_path=str(path),
            columns=columns,
            provenance={"byte_size": path.stat().st_size, "delimiter": delimiter},
        )


# ── JSON readers ──────────────────────────────────────────────────


def _unwrap_json(data: Any) -> List[Dict[str, Any]]:
    """Top-level list, else the list under data/products/items, else the object."""
    if isinstance(data, list):
        records = data
    elif isinstance(data, dict):
        for key in ("data", "products", "items"):
            if isinstance(data.get(key), list):
                records = data[key]
                break
        else:
            records = [data]
    else:
        raise ValueError(f"Expected a JSON object or array, got {type(data).__name__}")
    return [r for r in records if isinstance(r, dict)]


def _columns_of(rows: List[Dict[str, Any]]) -> List[str]:
    seen: Dict[str, None] = {}
    for row in rows:
        for key in row:
            seen.setdefault(str(key), None)
    return list(seen)


class JsonReader(PricingReader):
    extensions = (".json",)

    def read(self, path: Path, *, limit: Optional[int] = None) -> ReadResult:
        with open(path, "r", encoding="utf-8") as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as e:
                raise ValueError(f"Invalid JSON in {path}: {e}") from e
        rows = _unwrap_json(data)
        if limit is not None:
            rows = rows[:limit]
        return ReadResult(
            rows=rows,
            format="json",
            source_path=str(path),
            columns=_columns_of(rows),
            provenance={"byte_size": path.stat().st_size},
        )


class JsonlReader(PricingReader):
    extensions = (".jsonl", ".jsonlines")

    def read(self, path: Path, *, limit: Optional[int] = None) -> ReadResult:
        rows: List[Dict[str, Any]] = []
        with open(path, "r", encoding="utf-8") as f:
            for line in f:
                if limit is not None and len(rows) >= limit:
                    break
                line = line.strip()
                if not line:
                    continue
                row = json.loads(line)
                if isinstance(row, dict):
                    rows.append(row)
        return ReadResult(
            rows=rows,
            format="json",
            source_path=str(path),
            columns=_columns_of(rows),
            provenance={"byte_size": path.stat().st_size},
        )


# ── Text reader ───────────────────────────────────────────────────

_PRICE_RE = re.compile(r"\$\d+\.?\d*")
_DIGIT_RE = re.compile(r"\d+\.?\d*")
_WIDE_GAP_RE = re.compile(r"\s{2,}")


def _split_line(line: str) -> List[str]:
    parts = line.split("\t")
    if len(parts) == 1:
        parts = _WIDE_GAP_RE.split(line)
    if len(parts) == 1:
        parts = line.split()
    return [p.strip() for p in parts if p.strip()]


def parse_text(text: str) -> List[Dict[str, Any]]:
    """Parse pasted pricing text, one candidate item per line.

    Columns are split on tabs, then on runs of two or more spaces, then on
    any whitespace.  The last ``$`` amount on a line is its price.  Lines
    shorter than three characters, or without a number and with only one
    column, are ignored.
    """
    rows: List[Dict[str, Any]] = []
    for index, raw in enumerate(l for l in text.splitlines() if l.strip()):
        line = raw.strip()
        if len(line) < 3:
            continue
        parts = _split_line(line)
        prices = _PRICE_RE.findall(line)
        if not (prices or _DIGIT_RE.search(line) or len(parts) >= 2):
            continue

        price = parse_amount(prices[-1]) if prices else 0.0
        row: Dict[str, Any] = {
            "product": parts[0],
            "description": parts[0],
            "price": price,
            "unit_amount": to_minor_units(price),
            "currency": "usd",
            "line_number": index + 1,
        }
        if len(parts) > 1:
            row["details"] = " ".join(parts[1:])

        lowered = line.lower()
        if "per" in lowered or "usage" in lowered or "meter" in lowered:
            row["type"] = "metered"
        elif "month" in lowered or "subscription" in lowered:
            row["type"] = "recurring"
            row["interval"] = "month"
        else:
            row["type"] = "one_time"
        rows.append(row)
    return rows


class TextReader(PricingReader):
    extensions = (".txt", ".text")

    def read(self, path: Path, *, limit: Optional[int] = None) -> ReadResult:
        with open(path, "r", encoding="utf-8") as f:
            rows = parse_text(f.read())
        if limit is not None:
            rows = rows[:limit]
        return ReadResult(
            rows=rows,
            format="text",
            source_path=str(path),
            columns=_columns_of(rows),
            provenance={"byte_size": path.stat().st_size},
        )


# ── Dispatch ──────────────────────────────────────────────────────

_READERS: List[PricingReader] = [CsvReader(), JsonReader(), JsonlReader(), TextReader()]


def get_reader(path: Union[str, Path]) -> PricingReader:
    """Return the appropriate reader for a file path based on extension."""
    p = Path(path)
    for reader in _READERS:
        if reader.can_read(p):
            return reader
    raise ValueError(
        f"Unsupported file extension '{p.suffix}'. "
        f"Supported: .csv, .tsv, .json, .jsonl, .jsonlines, .txt, .text"
    )


def read_rows(path: Union[str, Path], *, limit: Optional[int] = None) -> ReadResult:
    """Read a pricing data file, auto-detecting format by extension."""
    p = Path(path)
    return get_reader(p).read(p, limit=limit)
