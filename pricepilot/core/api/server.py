"""PricePilot local-only HTTP API server (FastAPI + uvicorn)."""

from __future__ import annotations

import datetime
import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Query
from fastapi.exceptions import RequestValidationError

from pricepilot import __version__
from pricepilot.core.api.errors import (
    billing_validation_handler,
    config_error_handler,
    generic_exception_handler,
    http_exception_handler,
    remote_error_handler,
    validation_exception_handler,
)
from pricepilot.core.api.middleware import RequestIDMiddleware
from pricepilot.core.api.models import (
    BillingModelBody,
    BillingModelListResponse,
    BillingModelResponse,
    CatalogResponse,
    ClassifyRequest,
    ClassifyResponse,
    CleanupPlanResponse,
    CleanupRequest,
    CleanupResponse,
    DeploymentResponse,
    HealthResponse,
    PlanResponse,
    RecommendRequest,
    RecommendResponse,
)
from pricepilot.core.api.settings import Settings, load_settings, startup_warnings, validate_host
from pricepilot.core.billing.deploy import Reconciler
from pricepilot.core.billing.plan import plan_deployment
from pricepilot.core.billing.store import BillingModelStore, billing_model_store
from pricepilot.core.billing.stripe import MockStripeClient, StripeConfig, create_stripe_client
from pricepilot.core.catalog import TIERS
from pricepilot.core.classify import FORMATS, classify
from pricepilot.core.errors import ConfigError, RemoteCallError, ValidationError
from pricepilot.core.models import BillingModel
from pricepilot.core.readers import parse_text
from pricepilot.core.recommend import recommend
from pricepilot.core.validation import validate_model

logger = logging.getLogger("pricepilot.api")


def create_app(
    settings: Optional[Settings] = None,
    *,
    store: Optional[BillingModelStore] = None,
    stripe_client: Any = None,
) -> FastAPI:
    """Create and return the FastAPI application.

    ``store`` and ``stripe_client`` are injected in tests; by default the
    module-level model store and a client built from settings are used.
    """
    if settings is None:
        settings = load_settings()

    docs_url = "/docs" if settings.enable_docs else None
    openapi_url = "/openapi.json" if settings.enable_docs else None

    app = FastAPI(
        title="PricePilot API",
        description="Local-only API for billing model classification and Stripe reconciliation.",
        version=__version__,
        docs_url=docs_url,
        openapi_url=openapi_url,
        redoc_url=None,
    )

    app.state.settings = settings
    app.state.store = store if store is not None else billing_model_store
    app.state.stripe_client = stripe_client

    if store is None and settings.models_persist:
        app.state.store.configure_persistence(settings.models_path)

    # ── Normalized error envelope (always-on) ────────────────────
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(ValidationError, billing_validation_handler)
    app.add_exception_handler(ConfigError, config_error_handler)
    app.add_exception_handler(RemoteCallError, remote_error_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    app.add_middleware(RequestIDMiddleware, log_format=settings.log_format)

    def stripe_mode() -> str:
        client = app.state.stripe_client
        if isinstance(client, MockStripeClient) or (client is None and settings.use_mock_stripe):
            return "mock"
        if client is not None or settings.stripe_enabled:
            return "live"
        return "disabled"

    def get_client() -> Any:
        """The cached provider client. 501 when Stripe is off."""
        if app.state.stripe_client is None:
            if settings.use_mock_stripe:
                app.state.stripe_client = MockStripeClient()
            elif settings.stripe_enabled:
                app.state.stripe_client = create_stripe_client(StripeConfig.from_env())
            else:
                raise HTTPException(
                    status_code=501,
                    detail="Stripe is not enabled. Set PRICEPILOT_STRIPE_ENABLED=1.",
                )
        return app.state.stripe_client

    def get_model(model_id: str) -> BillingModel:
        model = app.state.store.get(model_id)
        if model is None:
            raise HTTPException(status_code=404, detail=f"Billing model not found: {model_id}")
        return model

    # ── Routes ───────────────────────────────────────────────────

    @app.get("/health", response_model=HealthResponse)
    def health() -> Dict[str, Any]:
        return {
            "status": "ok",
            "version": __version__,
            "time": datetime.datetime.now(datetime.timezone.utc).isoformat(),
            "mode": "local",
            "stripe": stripe_mode(),
        }

    @app.post("/v1/classify", response_model=ClassifyResponse)
    def classify_rows(body: ClassifyRequest) -> Dict[str, Any]:
        if body.format not in FORMATS:
            raise HTTPException(
                status_code=422, detail=f"format must be one of: {', '.join(FORMATS)}."
            )
        if body.rows is not None:
            rows, fmt = body.rows, body.format
        elif body.text is not None:
            rows, fmt = parse_text(body.text), "text"
        else:
            raise HTTPException(status_code=422, detail="Provide 'rows' or 'text'.")
        return classify(rows, fmt).to_dict()

    @app.post("/v1/recommend", response_model=RecommendResponse)
    def recommend_rows(body: RecommendRequest) -> Dict[str, Any]:
        return recommend(body.rows).to_dict()

    # ── Billing models ───────────────────────────────────────────

    @app.get("/v1/models", response_model=BillingModelListResponse)
    def list_models(owner_id: Optional[str] = Query(None)) -> Dict[str, Any]:
        models = app.state.store.list(owner_id=owner_id)
        return {"models": [m.to_dict() for m in models], "count": len(models)}

    @app.post("/v1/models", response_model=BillingModelResponse, status_code=201)
    def save_model(body: BillingModelBody) -> Dict[str, Any]:
        model = validate_model(BillingModel.from_dict(body.to_model_dict()))
        saved = app.state.store.save(model)
        logger.info("models: saved %s (%d items)", saved.id, len(saved.items))
        return saved.to_dict()

    @app.get("/v1/models/{model_id}", response_model=BillingModelResponse)
    def get_billing_model(model_id: str) -> Dict[str, Any]:
        return get_model(model_id).to_dict()

    @app.delete("/v1/models/{model_id}")
    def delete_model(model_id: str) -> Dict[str, Any]:
        if not app.state.store.delete(model_id):
            raise HTTPException(status_code=404, detail=f"Billing model not found: {model_id}")
        return {"id": model_id, "deleted": True}

    # ── Reconcile ────────────────────────────────────────────────

    @app.post("/v1/models/{model_id}/plan", response_model=PlanResponse)
    def plan_model(model_id: str) -> Dict[str, Any]:
        model = get_model(model_id)
        if stripe_mode() == "disabled":
            return plan_deployment(validate_model(model)).to_dict()
        return Reconciler(get_client()).plan(model).to_dict()

    @app.post("/v1/models/{model_id}/deploy", response_model=DeploymentResponse)
    def deploy_model(model_id: str) -> Dict[str, Any]:
        model = get_model(model_id)
        return Reconciler(get_client()).deploy(model).to_dict()

    @app.post("/v1/cleanup/plan", response_model=CleanupPlanResponse)
    def cleanup_plan() -> Dict[str, Any]:
        actions = Reconciler(get_client()).plan_cleanup()
        return {"actions": [a.to_dict() for a in actions], "count": len(actions)}

    @app.post("/v1/cleanup", response_model=CleanupResponse)
    def cleanup(body: CleanupRequest) -> Dict[str, Any]:
        reconciler = Reconciler(get_client())
        actions = reconciler.plan_cleanup()
        if body.product_ids is not None:
            wanted = set(body.product_ids)
            actions = [a for a in actions if a.product_id in wanted]
        return reconciler.execute_cleanup(actions).to_dict()

    # ── Catalog ──────────────────────────────────────────────────

    @app.get("/v1/catalog", response_model=CatalogResponse)
    def catalog() -> Dict[str, Any]:
        return {
            "tiers": [
                {
                    "id": t.id,
                    "name": t.name,
                    "description": t.description,
                    "model_type": t.model_type.value,
                    "monthly_base_cents": t.monthly_base_cents,
                    "usage_limit_transactions": t.usage_limit_transactions,
                    "overage_rate": t.overage_rate,
                }
                for t in TIERS.values()
            ]
        }

    return app


def start_server(
    *,
    host: str = "127.0.0.1",
    port: int = 8080,
    allow_nonlocal: bool = False,
    reload: bool = False,
    settings: Optional[Settings] = None,
) -> None:
    """Validate host, create app, and start uvicorn."""
    import uvicorn
    from rich.console import Console

    validate_host(host, allow_nonlocal)

    if settings is None:
        settings = load_settings(bind=host, port=port, allow_nonlocal=allow_nonlocal)

    console = Console(stderr=True)
    for w in startup_warnings(settings):
        console.print(f"[yellow]Warning:[/yellow] {w}")

    # Configure structured logging
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(name)s %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    )

    def app_factory() -> FastAPI:
        return create_app(settings)

    uvicorn.run(
        app_factory,
        host=host,
        port=port,
        reload=reload,
        log_level="info",
        factory=True,
    )
