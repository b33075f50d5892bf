# Copyright (c) Syntropy Systems
"""FastAPI application exposing eval state to request handlers and telemetry."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request

from fractal_eval.config import EvalConfig, load_config
from fractal_eval.errors import BudgetExceeded, ConfigurationError
from fractal_eval.models.api import (
    BudgetCheckRequest,
    CostGuardSnapshot,
    EvalRunInput,
    EvalRunRecord,
    EvalStatsSnapshot,
    HealthResponse,
    MessageResponse,
    RecordTokenUsageRequest,
    SelectVariantRequest,
    SelectVariantResponse,
    TokenUsageTotals,
    VariantCatalogRequest,
)
from fractal_eval.state import EvalState

logger = logging.getLogger(__name__)


def get_state(request: Request) -> EvalState:
    """Get the eval state owned by the application."""
    state: Optional[EvalState] = getattr(request.app.state, "eval_state", None)
    if state is None:
        raise RuntimeError("Eval state not initialized")
    state.ensure_loaded()
    return state


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Load policy memory at startup and flush pending writes at shutdown."""
    state: EvalState = app.state.eval_state
    state.ensure_loaded()
    logger.info(
        "Eval state ready (policy memory: %s, max tokens/session: %d)",
        state.persistence.path,
        state.budget.max_tokens_per_session,
    )

    yield

    state.close()


def create_app(
    config: Optional[EvalConfig] = None,
    state: Optional[EvalState] = None,
) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        config: Configuration; loaded from config.yaml and environment if omitted
        state: Pre-built eval state (tests); built from config if omitted

    Returns:
        Configured FastAPI application
    """
    if state is None:
        state = EvalState(config or load_config())
    catalog = list(state.config.prompt_variants)

    app = FastAPI(
        title="fractal-eval",
        description="Adaptive prompt policy memory and token budget guard",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.eval_state = state

    # --- Eval Endpoints ---

    @app.get("/api/v1/eval/stats", response_model=EvalStatsSnapshot, response_model_by_alias=True)
    def get_stats(state: EvalState = Depends(get_state)):
        """Telemetry snapshot over the configured prompt catalog."""
        return state.snapshot(catalog)

    @app.post("/api/v1/eval/stats", response_model=EvalStatsSnapshot, response_model_by_alias=True)
    def post_stats(request: VariantCatalogRequest, state: EvalState = Depends(get_state)):
        """Telemetry snapshot over a caller-supplied prompt catalog."""
        return state.snapshot(request.variants)

    @app.post("/api/v1/eval/select", response_model=SelectVariantResponse, response_model_by_alias=True)
    def select_variant(request: SelectVariantRequest, state: EvalState = Depends(get_state)):
        """Pick the prompt variant for the next generation."""
        try:
            variant = state.select_variant(request.variants, request.epsilon)
        except ConfigurationError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return SelectVariantResponse(variant=variant)

    @app.post("/api/v1/eval/runs", response_model=EvalRunRecord, response_model_by_alias=True)
    def record_run(request: EvalRunInput, state: EvalState = Depends(get_state)):
        """Record a judged generation."""
        return state.record_eval_run(request)

    # --- Token Budget Endpoints ---

    @app.post("/api/v1/tokens", response_model=TokenUsageTotals, response_model_by_alias=True)
    def record_tokens(request: RecordTokenUsageRequest, state: EvalState = Depends(get_state)):
        """Add token usage for an operation."""
        state.record_token_usage(request.operation, request.usage)
        return state.budget.totals()

    @app.get("/api/v1/budget", response_model=CostGuardSnapshot, response_model_by_alias=True)
    def get_budget(state: EvalState = Depends(get_state)):
        """Current cost guard state."""
        return state.cost_guard()

    @app.post("/api/v1/budget/check", response_model=MessageResponse, response_model_by_alias=True)
    def check_budget(request: BudgetCheckRequest, state: EvalState = Depends(get_state)):
        """Refuse with 429 if the session budget is already spent."""
        try:
            state.assert_within_budget(request.operation)
        except BudgetExceeded as e:
            raise HTTPException(status_code=429, detail=str(e))
        return MessageResponse(message=f"Budget available for {request.operation}")

    @app.get("/health", response_model=HealthResponse)
    def health_check(request: Request):
        """Health check endpoint."""
        state: EvalState = request.app.state.eval_state
        return HealthResponse(status="healthy", loaded=state.loaded)

    return app
