"""
HTTP client for the external schedule recommender.
Handles:
- plan requests (delay / track closure)
- response validation
- connection pooling

Failures never raise to the caller: they come back as
RecommendationResult(success=False, error=...).
"""

import httpx
import logging
from typing import Optional

from pydantic import ValidationError

from railflow.core.config import settings
from railflow.core.twin_schema import RecommendationPlan, RecommendationRequest, RecommendationResult

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------
# Singleton Instance
# ---------------------------------------------------------------------
_client_instance: Optional['RecommendationClient'] = None


class RecommendationClient:
    """Requests an operational plan for a disrupted train."""

    def __init__(
        self,
        url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.url = url or settings.RECOMMENDER_URL
        self.timeout = settings.RECOMMENDER_TIMEOUT_SECONDS if timeout is None else timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    # ------------------------------------------------------------------
    # HTTP Client
    # ------------------------------------------------------------------
    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            limits = httpx.Limits(max_connections=10, max_keepalive_connections=5)
            self._client = httpx.AsyncClient(timeout=self.timeout, limits=limits, transport=self._transport)
        return self._client

    # ------------------------------------------------------------------
    # Plan request
    # ------------------------------------------------------------------
    async def request_plan(self, request: RecommendationRequest) -> RecommendationResult:
        if not self.url:
            return RecommendationResult(success=False, error="No recommender URL configured.")

        try:
            client = await self._get_client()
            response = await client.post(self.url, json=request.model_dump(by_alias=True))
            response.raise_for_status()
            plan = RecommendationPlan.model_validate(response.json())
        except httpx.TimeoutException as e:
            logger.error(f"Recommender timed out: {e}")
            return RecommendationResult(success=False, error=f"Failed to get optimization. Details: timeout ({e})")
        except httpx.HTTPStatusError as e:
            logger.error(f"Recommender returned {e.response.status_code}")
            return RecommendationResult(
                success=False,
                error=f"Failed to get optimization. Details: HTTP {e.response.status_code}",
            )
        except httpx.HTTPError as e:
            logger.error(f"Recommender request failed: {e}")
            return RecommendationResult(success=False, error=f"Failed to get optimization. Details: {e}")
        except (ValueError, ValidationError) as e:
            # ValueError covers undecodable JSON bodies
            logger.error(f"Recommender returned an invalid plan: {e}")
            return RecommendationResult(success=False, error=f"Invalid plan from recommender. Details: {e}")

        logger.info(f"Received plan with {len(plan.actions)} actions for {request.disruption_type}")
        return RecommendationResult(success=True, data=plan)

    # ------------------------------------------------------------------
    async def close(self):
        if self._client:
            await self._client.aclose()
            self._client = None


# ---------------------------------------------------------------------
# Singleton getter
# ---------------------------------------------------------------------
def get_recommendation_client() -> RecommendationClient:
    global _client_instance

    if _client_instance is None:
        _client_instance = RecommendationClient()

    return _client_instance

