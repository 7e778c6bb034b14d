from __future__ import annotations

from datetime import datetime
from typing import Any

from coach_crm.cache import detail_target, list_target, removal_target
from coach_crm.core.validation import clean_updates, require_id
from coach_crm.data.base import DataSource, parse_first, parse_rows
from coach_crm.db.models import Meeting
from coach_crm.db.supabase import eq

MEETING = "meeting"
MEETINGS = "meetings"


class MeetingsData(DataSource):
    async def list_meetings(
        self,
        customer_id: str | None = None,
        *,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[Meeting]:
        """
        Meetings newest first, optionally for one customer and a time window
        (the calendar's visible range).
        """

        filters: dict[str, str] = {}
        if customer_id:
            filters["customer_id"] = eq(customer_id)
        bounds: list[str] = []
        if start is not None:
            bounds.append(f"created_at.gte.{start.isoformat()}")
        if end is not None:
            bounds.append(f"created_at.lte.{end.isoformat()}")
        if bounds:
            filters["and"] = f"({','.join(bounds)})"

        key = (
            MEETINGS,
            customer_id,
            start.isoformat() if start else None,
            end.isoformat() if end else None,
        )

        async def load() -> list[Meeting]:
            result = await self._client.select("meetings", filters, ["created_at.desc"])
            return parse_rows(Meeting, result)

        return await self._cache.fetch(key, load)

    async def fetch_meeting(self, meeting_id: str) -> Meeting | None:
        meeting_id = require_id(meeting_id, "meeting_id")

        async def load() -> Meeting | None:
            row = await self._client.select_one("meetings", {"id": eq(meeting_id)})
            return Meeting.model_validate(row) if row else None

        return await self._cache.fetch((MEETING, meeting_id), load)

    async def update_meeting(self, meeting_id: str, updates: dict[str, Any]) -> Meeting:
        """
        Merge `updates` into the meeting's form data (`meeting_data`).
        """

        meeting_id = require_id(meeting_id, "meeting_id")
        fields = clean_updates(updates)

        current = await self.fetch_meeting(meeting_id)
        if current is None:
            raise LookupError(f"Meeting {meeting_id} not found")

        payload = {"meeting_data": {**current.meeting_data, **fields}}
        targets = [
            detail_target((MEETING, meeting_id)),
            list_target((MEETINGS,), meeting_id),
        ]

        async def remote(cleaned: dict[str, Any]) -> Meeting:
            return parse_first(Meeting, await self._client.update("meetings", meeting_id, cleaned))

        return await self._reconciler.update(
            payload,
            targets,
            remote,
            invalidate=((MEETINGS,),),
            success_message="הפגישה עודכנה",
            failure_message="נכשל בעדכון הפגישה",
        )

    async def delete_meeting(self, meeting_id: str) -> None:
        meeting_id = require_id(meeting_id, "meeting_id")

        async def remote(_: dict[str, Any]) -> Any:
            return (await self._client.delete("meetings", [meeting_id])).unwrap()

        await self._reconciler.remove(
            [removal_target((MEETINGS,), [meeting_id])],
            remote,
            invalidate=((MEETINGS,),),
            failure_message="נכשל במחיקת הפגישה",
        )
        self._cache.remove((MEETING, meeting_id))
