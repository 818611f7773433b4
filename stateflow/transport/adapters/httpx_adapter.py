import logging
from typing import Any, Dict, Optional

import httpx

from ..interface import HttpResult, HttpTransport
from ...config import settings
from ...exceptions import TransportError

logger = logging.getLogger(__name__)


class HttpxTransport(HttpTransport):
    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = settings.HTTP_TIMEOUT_SECONDS,
    ):
        self.client = client or httpx.AsyncClient(timeout=timeout)
        self.timeout = timeout

    async def call(
        self,
        endpoint: str,
        method: str = "GET",
        headers: Optional[Dict[str, str]] = None,
        body: Optional[Any] = None,
        timeout: Optional[float] = None,
    ) -> HttpResult:
        request_args: Dict[str, Any] = {"headers": headers or {}}
        if body is not None:
            # Strings go out verbatim, everything else as JSON.
            if isinstance(body, (str, bytes)):
                request_args["content"] = body
            else:
                request_args["json"] = body

        try:
            response = await self.client.request(
                method.upper(),
                endpoint,
                timeout=timeout or self.timeout,
                **request_args,
            )
        except httpx.TimeoutException as e:
            raise TransportError(f"Request to {endpoint} timed out: {e}", error_type="timeout")
        except httpx.HTTPError as e:
            raise TransportError(f"Request to {endpoint} failed: {e}")
        # Neither derives from httpx.HTTPError.
        except (httpx.InvalidURL, httpx.StreamError) as e:
            raise TransportError(
                f"Request to {endpoint!r} could not be sent: {e}", error_type="invalid_request"
            )

        logger.debug(f"{method.upper()} {endpoint} -> {response.status_code}")
        return HttpResult(
            status_code=response.status_code,
            text=response.text,
            headers=dict(response.headers),
        )

    async def aclose(self):
        await self.client.aclose()
