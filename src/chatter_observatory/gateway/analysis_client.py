"""HTTP client for the analysis service."""

from __future__ import annotations

from typing import Sequence

import httpx
from pydantic import ValidationError

from chatter_observatory.config.settings import Settings
from chatter_observatory.core.exceptions import AnalysisServiceError, SessionNotFoundError
from chatter_observatory.core.schemas.summary import SessionSummary


class AnalysisClient:
    """Fetches session summaries from the analysis service.

    Args:
        http: ``httpx.AsyncClient`` whose ``base_url`` is the analysis root.
    """

    def __init__(self, http: httpx.AsyncClient) -> None:
        self._http = http

    @classmethod
    def from_settings(cls, settings: Settings) -> "AnalysisClient":
        http = httpx.AsyncClient(base_url=settings.analysis_base_url, timeout=30.0)
        return cls(http)

    async def get_summary(
        self, session_uuid: str, broadcaster_ids: Sequence[str] = ()
    ) -> SessionSummary:
        """Return the summary of ``session_uuid``, optionally per broadcaster.

        Raises:
            SessionNotFoundError: If the analysis service answers 404.
            AnalysisServiceError: On transport failures, other error statuses
                or an invalid body.
        """
        params = {"broadcaster_id": ",".join(broadcaster_ids)} if broadcaster_ids else None
        try:
            response = await self._http.get(f"/sessions/{session_uuid}/summary", params=params)
        except httpx.HTTPError as exc:
            raise AnalysisServiceError(f"analysis request failed: {exc}") from exc
        if response.status_code == 404:
            raise SessionNotFoundError(session_uuid)
        if response.is_error:
            raise AnalysisServiceError(
                f"analysis returned {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )
        try:
            return SessionSummary.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise AnalysisServiceError("analysis returned an invalid body") from exc

    async def aclose(self) -> None:
        await self._http.aclose()
