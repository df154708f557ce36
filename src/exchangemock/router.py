"""
ExchangeMock Router

Binds each declared exchange to a FastAPI route. Every matching request
selects the next response of the exchange, materializes it and writes it back.
"""

import logging
from typing import Iterable

from fastapi import FastAPI, Request, Response

from .materializer import ResponseMaterializer
from .metrics import ServerMetrics
from .models import MaterializedResponse, NetworkExchange
from .selector import select_response
from .tracker import RequestTracker


logger = logging.getLogger("exchangemock.router")

# Computed by the transport from the actual body
HEADERS_TO_SKIP = {'content-length', 'transfer-encoding', 'connection'}


class ExchangeRoute:
    """Request handler for one declared exchange."""

    def __init__(
        self,
        exchange: NetworkExchange,
        tracker: RequestTracker,
        materializer: ResponseMaterializer,
        metrics: ServerMetrics = None
    ):
        self.exchange = exchange
        self.tracker = tracker
        self.materializer = materializer
        self.metrics = metrics

    async def respond(self) -> MaterializedResponse:
        """Select the next response of the sequence and build its payload."""
        response, count = select_response(self.exchange, self.tracker)
        logger.debug(
            f"{self.exchange.request} hit #{count}, serving {response.kind_name} response "
            f"with status {response.status}"
        )

        result = await self.materializer.materialize(response)
        if self.metrics is not None:
            self.metrics.record(result.failure)
        return result

    async def handle(self, request: Request) -> Response:
        """Serve a request routed to this exchange."""
        return to_http_response(await self.respond())


def to_http_response(result: MaterializedResponse) -> Response:
    """
    Convert a MaterializedResponse to a Starlette Response.

    Header order and repeated names are kept by writing raw headers.
    """
    response = Response(content=result.body, status_code=result.status)
    for name, value in result.headers:
        if name.lower() in HEADERS_TO_SKIP:
            continue
        response.raw_headers.append((name.lower().encode('latin-1'), value.encode('latin-1')))
    return response


def _make_endpoint(route: ExchangeRoute):
    # FastAPI builds dependencies from the signature, so only `request` may appear there
    async def endpoint(request: Request):
        return await route.handle(request)

    return endpoint


def register_exchanges(
    app: FastAPI,
    exchanges: Iterable[NetworkExchange],
    tracker: RequestTracker,
    materializer: ResponseMaterializer,
    metrics: ServerMetrics = None
):
    """
    Register a route on `app` for every exchange.

    Args:
        app: FastAPI application to attach the routes to
        exchanges: Declared exchanges (identities must be unique)
        tracker: Request tracker shared by all routes of the server
        materializer: Materializer configured with the server delay
        metrics: Optional metrics updated on every served request
    """
    for exchange in exchanges:
        route = ExchangeRoute(exchange, tracker, materializer, metrics)
        app.add_api_route(
            exchange.request.path,
            _make_endpoint(route),
            methods=[exchange.request.method],
            name=str(exchange.request),
        )
        logger.debug(f"Registered route {exchange.request} ({len(exchange.responses)} responses)")
