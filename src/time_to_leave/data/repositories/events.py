from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List

from ...domain import CalendarEvent, DateRange
from ..supabase import SupabaseGateway

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class EventRepository:
    gateway: SupabaseGateway
    table_name: str

    def fetch_window(self, date_range: DateRange) -> List[CalendarEvent]:
        """Events whose start falls in ``[start, end)`` for the signed-in user."""

        user_id = self.gateway.current_user_id()
        query = (
            self.gateway.ensure_client()
            .table(self.table_name)
            .select("*")
            .eq("user_id", user_id)
            .gte("starts_at", date_range.start.isoformat())
            .lt("starts_at", date_range.end.isoformat())
            .order("starts_at", desc=False)
        )
        response = query.execute()
        records = response.data or []
        events: list[CalendarEvent] = []
        for record in records:
            try:
                events.append(CalendarEvent.from_record(record))
            except (KeyError, ValueError):
                logger.warning("Skipping calendar record without usable dates: %r", record.get("id"))
        return events
