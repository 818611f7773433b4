import json
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class HttpResult(BaseModel):
    status_code: int
    text: str = ""
    headers: Dict[str, str] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def json(self) -> Any:
        """Parses the body. Raises ValueError when it is not JSON."""
        return json.loads(self.text)


class HttpTransport(ABC):
    """
    Abstract Base Class interface for the outbound HTTP capability used by
    api_request nodes.
    """

    @abstractmethod
    async def call(
        self,
        endpoint: str,
        method: str = "GET",
        headers: Optional[Dict[str, str]] = None,
        body: Optional[Any] = None,
        timeout: Optional[float] = None,
    ) -> HttpResult:
        """
        Issues the request and returns whatever status the server answered.
        Raises TransportError when no response was received.
        """
        pass

    async def aclose(self):
        """Releases connections."""
        pass
