"""Pydantic request/response models for the PricePilot local API."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


# ── Health ───────────────────────────────────────────────────────

class HealthResponse(BaseModel):
    status: str = "ok"
    version: str
    time: str
    mode: str = "local"
    stripe: str = "disabled"


# ── Classify / Recommend ─────────────────────────────────────────

class ClassifyRequest(BaseModel):
    rows: Optional[List[Dict[str, Any]]] = Field(
        None,
        description="Tabular records (CSV rows or JSON objects).",
    )
    text: Optional[str] = Field(
        None,
        description="Pasted pricing text; parsed line by line when rows is absent.",
    )
    format: str = Field(
        "csv",
        description="How the rows were obtained: csv, json, xml or text.",
    )


class ClassifyResponse(BaseModel):
    structure: str
    confidence: int
    items: List[Dict[str, Any]]
    suggested_model_type: str
    detected_columns: List[str] = []
    patterns: List[str] = []


class RecommendRequest(BaseModel):
    rows: List[Dict[str, Any]] = Field(default_factory=list)


class RecommendResponse(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    model_type: str
    confidence: int
    reasoning: str
    metering_strategy: str
    patterns: List[str]
    items: List[Dict[str, Any]]
    price_stats: Dict[str, float]


# ── Billing models ───────────────────────────────────────────────

class BillingItemBody(BaseModel):
    id: str
    product_name: str
    billing_kind: str = Field("one_time", description="metered, recurring or one_time.")
    price_minor_units: Any = 0
    currency: str = "usd"
    description: Optional[str] = None
    metadata: Dict[str, str] = Field(default_factory=dict)
    interval: Optional[str] = None
    event_name: Optional[str] = None
    aggregation: Optional[str] = None
    included_usage: Optional[int] = None
    overage_rate_per_unit: Optional[float] = None


class BillingModelBody(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    id: Optional[str] = Field(None, description="Assigned by the server when omitted.")
    name: str
    model_type: str = "pay_as_you_go"
    description: str = ""
    owner_id: str = ""
    items: List[BillingItemBody] = Field(default_factory=list)

    def to_model_dict(self) -> Dict[str, Any]:
        d = self.model_dump(exclude_none=True)
        d["items"] = [i.model_dump(exclude_none=True) for i in self.items]
        return d


class BillingModelResponse(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    id: str
    name: str
    model_type: str
    description: str = ""
    created_at: str = ""
    owner_id: str = ""
    items: List[Dict[str, Any]]


class BillingModelListResponse(BaseModel):
    models: List[BillingModelResponse]
    count: int


# ── Reconcile ────────────────────────────────────────────────────

class PlanResponse(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    model_id: str
    products_to_create: List[Dict[str, Any]]
    prices_to_create: List[Dict[str, Any]]
    meters_to_create: List[Dict[str, Any]]
    stale_objects_to_deactivate: List[str] = []
    skipped_meters: List[str] = []


class DeploymentResponse(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    model_id: str
    products_created: List[Dict[str, str]]
    prices_created: List[Dict[str, str]]
    meters_created: List[Dict[str, str]]
    errors: List[Dict[str, str]]
    ok: bool


class CleanupPlanResponse(BaseModel):
    actions: List[Dict[str, Any]]
    count: int


class CleanupRequest(BaseModel):
    product_ids: Optional[List[str]] = Field(
        None,
        description="Restrict execution to these planned products (all when omitted).",
    )


class CleanupResponse(BaseModel):
    deactivated: List[str]
    skipped: List[Dict[str, str]]
    errors: List[Dict[str, str]]
    ok: bool


# ── Catalog ──────────────────────────────────────────────────────

class TierResponse(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    id: str
    name: str
    description: str
    model_type: str
    monthly_base_cents: int
    usage_limit_transactions: Optional[int] = None
    overage_rate: Optional[float] = None


class CatalogResponse(BaseModel):
    tiers: List[TierResponse]
