# app/services/party_resolver.py
from __future__ import annotations

import logging
import time
from typing import Callable, Dict, Optional

from pydantic import ValidationError

from app.schemas.party import PartyRecord
from app.services.crm_client import CrmClient, CrmClientError

logger = logging.getLogger(__name__)

CLIENTS_PATH = "/clients/v1"


class PartyResolver:
    """
    Resolves the lead setter of a meeting from a cached client roster.

    The full roster is fetched in one call and kept in memory for
    `ttl_seconds`. A refresh replaces the whole mapping; entries are never
    merged incrementally.

    Unlike the meetings endpoint, the clients endpoint returns a bare JSON
    list with no success envelope.
    """

    def __init__(
        self,
        crm_client: CrmClient,
        ttl_seconds: float = 300.0,
        page_limit: int = 500,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.crm = crm_client
        self.ttl_seconds = ttl_seconds
        self.page_limit = page_limit
        self._clock = clock
        self._parties: Dict[int, PartyRecord] = {}
        self._last_refresh: Optional[float] = None

    @property
    def size(self) -> int:
        return len(self._parties)

    @property
    def last_refresh(self) -> Optional[float]:
        return self._last_refresh

    def is_stale(self) -> bool:
        if self._last_refresh is None:
            return True
        return self._clock() - self._last_refresh >= self.ttl_seconds

    async def refresh(self) -> bool:
        """
        Fetch the full roster and swap it in.

        Returns False (keeping the previous mapping) when the fetch fails.
        The refresh timestamp only advances on success.
        """
        try:
            payload = await self.crm.get_json(CLIENTS_PATH, params={"limit": self.page_limit})
        except CrmClientError as exc:
            logger.error("Error fetching BuilderPrime client roster: %s", exc)
            return False

        if not isinstance(payload, list):
            logger.error(
                "Unexpected BuilderPrime client roster payload (expected list, got %s)",
                type(payload).__name__,
            )
            return False

        parties: Dict[int, PartyRecord] = {}
        for raw in payload:
            try:
                party = PartyRecord.model_validate(raw)
            except ValidationError as exc:
                logger.debug("Skipping malformed client record: %s", exc)
                continue
            parties[party.id] = party

        self._parties = parties
        self._last_refresh = self._clock()
        logger.info("Client roster refreshed (%d clients)", len(parties))
        return True

    async def resolve(self, client_id: Optional[int]) -> Optional[str]:
        """
        Return the lead setter's display name for `client_id`, or None.

        A stale cache is refreshed before the lookup. Misses, unknown ids and
        clients without a recorded lead setter all resolve to None.
        """
        if self.is_stale():
            await self.refresh()

        if client_id is None:
            return None

        party = self._parties.get(client_id)
        if party is None:
            logger.debug("Client %s not found in roster", client_id)
            return None
        return party.lead_setter_name
