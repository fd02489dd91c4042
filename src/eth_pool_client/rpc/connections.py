"""Endpoint connections handed out by the connection pool."""

from __future__ import annotations

import logging
import random
from collections.abc import Sequence
from typing import Any

import requests
from web3 import HTTPProvider, Web3

from ..constants import DEFAULT_REQUEST_TIMEOUT
from ..exceptions import RpcError, ValidationError
from .pool import Factory

logger = logging.getLogger(__name__)


class EndpointConnection:
    """One HTTP connection (session + Web3 provider) to a single endpoint."""

    def __init__(
        self,
        endpoint: str,
        *,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        session: requests.Session | None = None,
    ) -> None:
        self.endpoint = endpoint
        self._session = session or requests.Session()
        # Retries are the dispatcher's job, so the provider's own are disabled.
        self.provider = HTTPProvider(
            endpoint,
            request_kwargs={"timeout": request_timeout},
            session=self._session,
            exception_retry_configuration=None,
        )
        self.web3 = Web3(self.provider)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def request(self, method: str, params: Sequence[Any] = ()) -> Any:
        """Send one JSON-RPC request and return its ``result`` member."""

        response = self.provider.make_request(method, list(params))  # type: ignore[arg-type]
        error = response.get("error")
        if error:
            if isinstance(error, dict):
                message = str(error.get("message", error))
                code = error.get("code")
            else:
                message, code = str(error), None
            raise RpcError(
                f"{method} failed: {message}",
                code=code,
                endpoint=self.endpoint,
                details={"error": error},
            )
        return response.get("result")

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._session.close()
        logger.debug("Closed connection to %s", self.endpoint)

    def __repr__(self) -> str:
        return f"EndpointConnection({self.endpoint!r})"


def random_endpoint_factory(
    endpoints: Sequence[str],
    *,
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
    rng: random.Random | None = None,
) -> Factory:
    """Return a pool factory that connects to a randomly chosen endpoint.

    Endpoints are treated as interchangeable replicas, so each new connection
    picks one at random; over time this spreads connections across them.
    """

    urls = [url for url in endpoints if url]
    if not urls:
        raise ValidationError("At least one endpoint is required", field="endpoints")
    chooser = rng or random.Random()

    def factory() -> EndpointConnection:
        endpoint = chooser.choice(urls)
        logger.debug("Opening connection to %s", endpoint)
        return EndpointConnection(endpoint, request_timeout=request_timeout)

    return factory
