"""Starlette HTTP application exposing the order workflow as JSON routes."""

from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from typing import Any

from pydantic import BaseModel, Field, ValidationError
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from frameshop.app import AppContext, get_app_context
from frameshop.domain.errors import (
    ConcurrentUpdateError,
    OrderNotFoundError,
    OrderValidationError,
    TransientStoreError,
)
from frameshop.middleware.audit import ACTOR_HEADER, RequestLogMiddleware
from frameshop.reporting.workload import workload_metrics
from frameshop.utils.serialization import to_jsonable
from frameshop.workflow.intake import NewCustomer, NewMaterial, NewOrder
from frameshop.workflow.status_machine import DEFAULT_ACTOR, coerce_status

logger = logging.getLogger(__name__)


class StatusChangeRequest(BaseModel):
    status: str = Field(min_length=1)
    reason: str | None = Field(default=None, max_length=1000)


class DuplicateCheckRequest(BaseModel):
    order_ids: list[str] = Field(default_factory=list)


class MaterialOrderRequest(BaseModel):
    order_ids: list[str] = Field(default_factory=list)
    override_code: str | None = None
    override_reason: str | None = Field(default=None, max_length=1000)


def _actor(request: Request) -> str:
    actor = request.headers.get(ACTOR_HEADER, "").strip()
    return actor or DEFAULT_ACTOR


async def _read_json(request: Request) -> dict[str, Any]:
    try:
        body = await request.json()
    except json.JSONDecodeError as exc:
        raise OrderValidationError(f"Request body is not valid JSON: {exc.msg}") from exc
    if not isinstance(body, dict):
        raise OrderValidationError("Request body must be a JSON object")
    return body


def _error(status_code: int, error: str, message: str, **extra: Any) -> JSONResponse:
    return JSONResponse({"error": error, "message": message, **extra}, status_code=status_code)


async def _validation_error(request: Request, exc: Exception) -> Response:
    if isinstance(exc, ValidationError):
        details = [
            {"loc": [str(part) for part in err["loc"]], "msg": err["msg"]}
            for err in exc.errors()
        ]
        return _error(400, "validation_error", "Request validation failed", details=details)
    return _error(400, "validation_error", str(exc))


async def _not_found(request: Request, exc: Exception) -> Response:
    return _error(404, "not_found", str(exc))


async def _conflict(request: Request, exc: Exception) -> Response:
    return _error(409, "conflict", str(exc))


async def _store_unavailable(request: Request, exc: Exception) -> Response:
    logger.error("Store unavailable while handling %s: %s", request.url.path, exc)
    return _error(503, "store_unavailable", "Order store is temporarily unavailable")


def create_http_app(context: AppContext | None = None) -> Starlette:
    """Create the HTTP application around ``context`` (the shared one by default)."""
    ctx = context or get_app_context()
    settings = ctx.settings

    override_code = settings.ordering.override_code
    middleware: list[Middleware] = [
        Middleware(
            RequestLogMiddleware,
            override_code=override_code.get_secret_value() if override_code else None,
        ),
    ]

    if settings.server.http_enable_cors and settings.server.http_allowed_origins:
        from starlette.middleware.cors import CORSMiddleware

        middleware.insert(
            0,
            Middleware(
                CORSMiddleware,
                allow_origins=list(settings.server.http_allowed_origins),
                allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
                allow_headers=["Content-Type", "Accept", "X-Actor-Id", "X-Request-Id"],
            ),
        )

    async def health_handler(request: Request) -> Response:
        return JSONResponse({"status": "healthy"})

    async def create_customer_handler(request: Request) -> Response:
        data = NewCustomer.model_validate(await _read_json(request))
        customer = await ctx.intake.create_customer(data)
        return JSONResponse(to_jsonable(customer), status_code=201)

    async def list_customers_handler(request: Request) -> Response:
        customers = await ctx.store.list_customers()
        return JSONResponse({"customers": to_jsonable(customers)})

    async def create_order_handler(request: Request) -> Response:
        data = NewOrder.model_validate(await _read_json(request))
        order = await ctx.intake.create_order(data, _actor(request))
        return JSONResponse(to_jsonable(order), status_code=201)

    async def list_orders_handler(request: Request) -> Response:
        raw_status = request.query_params.get("status")
        status = coerce_status(raw_status.strip().upper()) if raw_status else None
        orders = await ctx.store.list_orders(status)
        return JSONResponse({"orders": to_jsonable(orders)})

    async def search_orders_handler(request: Request) -> Response:
        query = request.query_params.get("q", "").strip()
        if not query:
            raise OrderValidationError("Search query required")
        orders = await ctx.store.search_orders(query)
        return JSONResponse({"orders": to_jsonable(orders)})

    async def get_order_handler(request: Request) -> Response:
        order_id = request.path_params["order_id"]
        order = await ctx.store.get_order(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        history = await ctx.status_machine.history(order_id)
        return JSONResponse({"order": to_jsonable(order), "history": to_jsonable(history)})

    async def update_order_handler(request: Request) -> Response:
        order_id = request.path_params["order_id"]
        order = await ctx.intake.update_order(order_id, await _read_json(request))
        return JSONResponse(to_jsonable(order))

    async def list_materials_handler(request: Request) -> Response:
        materials = await ctx.intake.materials_for_order(request.path_params["order_id"])
        return JSONResponse({"materials": to_jsonable(materials)})

    async def add_material_handler(request: Request) -> Response:
        data = NewMaterial.model_validate(await _read_json(request))
        material = await ctx.intake.add_material(request.path_params["order_id"], data)
        return JSONResponse(to_jsonable(material), status_code=201)

    async def track_order_handler(request: Request) -> Response:
        summary = await ctx.intake.track_order(request.path_params["tracking_id"])
        return JSONResponse(to_jsonable(summary))

    async def change_status_handler(request: Request) -> Response:
        order_id = request.path_params["order_id"]
        body = StatusChangeRequest.model_validate(await _read_json(request))
        entry = await ctx.status_machine.transition_status(
            order_id, body.status, _actor(request), body.reason
        )
        order = await ctx.store.get_order(order_id)
        return JSONResponse(
            {
                "order": to_jsonable(order),
                "changed": entry is not None,
                "entry": to_jsonable(entry),
            }
        )

    async def check_material_order_handler(request: Request) -> Response:
        body = DuplicateCheckRequest.model_validate(await _read_json(request))
        check = await ctx.ordering.check_duplicate_orders(body.order_ids)
        return JSONResponse(to_jsonable(check))

    async def material_order_handler(request: Request) -> Response:
        body = MaterialOrderRequest.model_validate(await _read_json(request))
        result = await ctx.ordering.process_material_order(
            body.order_ids,
            _actor(request),
            override_code=body.override_code,
            override_reason=body.override_reason,
        )
        return JSONResponse(to_jsonable(result))

    async def recent_material_orders_handler(request: Request) -> Response:
        raw_hours = request.query_params.get("hours")
        hours: float | None = None
        if raw_hours is not None:
            try:
                hours = float(raw_hours)
            except ValueError as exc:
                raise OrderValidationError("hours must be a number") from exc
        records = await ctx.ordering.recent_ordering_activity(hours)
        return JSONResponse({"records": to_jsonable(records)})

    async def workload_handler(request: Request) -> Response:
        orders = await ctx.store.list_orders()
        metrics = workload_metrics(orders, ctx.clock.now().date())
        return JSONResponse(to_jsonable(metrics))

    routes = [
        Route("/health", endpoint=health_handler, methods=["GET"]),
        Route("/api/customers", endpoint=create_customer_handler, methods=["POST"]),
        Route("/api/customers", endpoint=list_customers_handler, methods=["GET"]),
        Route("/api/orders", endpoint=create_order_handler, methods=["POST"]),
        Route("/api/orders", endpoint=list_orders_handler, methods=["GET"]),
        Route("/api/orders/search", endpoint=search_orders_handler, methods=["GET"]),
        Route("/api/orders/{order_id}", endpoint=get_order_handler, methods=["GET"]),
        Route("/api/orders/{order_id}", endpoint=update_order_handler, methods=["PATCH"]),
        Route(
            "/api/orders/{order_id}/status",
            endpoint=change_status_handler,
            methods=["PATCH"],
        ),
        Route(
            "/api/orders/{order_id}/materials",
            endpoint=list_materials_handler,
            methods=["GET"],
        ),
        Route(
            "/api/orders/{order_id}/materials",
            endpoint=add_material_handler,
            methods=["POST"],
        ),
        Route("/api/track/{tracking_id}", endpoint=track_order_handler, methods=["GET"]),
        Route(
            "/api/material-orders/check",
            endpoint=check_material_order_handler,
            methods=["POST"],
        ),
        Route("/api/material-orders", endpoint=material_order_handler, methods=["POST"]),
        Route(
            "/api/material-orders/recent",
            endpoint=recent_material_orders_handler,
            methods=["GET"],
        ),
        Route("/api/analytics/workload", endpoint=workload_handler, methods=["GET"]),
    ]

    exception_handlers = {
        ValidationError: _validation_error,
        OrderValidationError: _validation_error,
        OrderNotFoundError: _not_found,
        ConcurrentUpdateError: _conflict,
        TransientStoreError: _store_unavailable,
    }

    @asynccontextmanager
    async def lifespan(app: Starlette):
        logger.info("Starting frame shop HTTP server...")
        ctx.dispatcher.start()
        try:
            yield
        finally:
            logger.info("Stopping frame shop HTTP server...")
            await ctx.dispatcher.stop()

    return Starlette(
        routes=routes,
        middleware=middleware,
        exception_handlers=exception_handlers,
        lifespan=lifespan,
    )
