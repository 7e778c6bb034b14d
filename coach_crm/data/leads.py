from __future__ import annotations

import logging
from typing import Any, Iterable, Sequence

from coach_crm.cache import (
    detail_target,
    list_target,
    nested_list_target,
    removal_target,
)
from coach_crm.core.validation import normalize_phone, require_id, require_ids
from coach_crm.data.base import DataSource, parse_first, parse_rows
from coach_crm.db.filters import (
    FieldConfigs,
    FieldFilterConfig,
    FilterGroup,
    build_or_expression,
)
from coach_crm.db.models import Customer, Lead
from coach_crm.db.supabase import eq

logger = logging.getLogger(__name__)

LEAD = "lead"
LEADS = "leads"
CUSTOMER = "customer"
CUSTOMERS = "customers"

# Everything derived from lead rows; marked stale after any lead write
LEAD_DEPENDENTS: tuple[tuple[str, ...], ...] = (
    (CUSTOMER,),
    (LEADS,),
    ("lead-for-customer",),
    ("filtered-leads",),
)

# Status flow used by the pipeline board
STATUS_NEW = "חדש"
STATUS_IN_PROGRESS = "בטיפול"

# Table filter field ids mapped onto lead columns
LEAD_FIELD_CONFIGS: FieldConfigs = {
    "createdDate": FieldFilterConfig(column="created_at", type="date"),
    "status": FieldFilterConfig(column="status_main", type="select"),
    "height": FieldFilterConfig(column="height", type="number"),
    "weight": FieldFilterConfig(column="weight", type="number"),
    "fitnessGoal": FieldFilterConfig(column="fitness_goal", type="select"),
    "activityLevel": FieldFilterConfig(column="activity_level", type="select"),
    "preferredTime": FieldFilterConfig(column="preferred_time", type="select"),
    "source": FieldFilterConfig(column="source", type="select"),
    "notes": FieldFilterConfig(column="notes", type="text"),
}


class LeadsData(DataSource):
    async def fetch_lead(self, lead_id: str) -> Lead | None:
        lead_id = require_id(lead_id, "lead_id")

        async def load() -> Lead | None:
            row = await self._client.select_one("leads", {"id": eq(lead_id)})
            return Lead.model_validate(row) if row else None

        return await self._cache.fetch((LEAD, lead_id), load)

    async def list_leads(
        self,
        filter_group: FilterGroup | None = None,
        *,
        field_configs: FieldConfigs | None = None,
        status_main: str | None = None,
        order: Sequence[str] = ("created_at.desc",),
        page: int = 0,
        page_size: int = 50,
    ) -> list[Lead]:
        """
        One page of leads, optionally narrowed by a filter group.
        """

        or_expression = build_or_expression(filter_group, field_configs or LEAD_FIELD_CONFIGS)
        filters: dict[str, str] = {}
        if status_main:
            filters["status_main"] = eq(status_main)

        key = (LEADS, or_expression, status_main, tuple(order), page, page_size)
        start = page * page_size

        async def load() -> list[Lead]:
            result = await self._client.select(
                "leads",
                filters,
                order,
                (start, start + page_size - 1),
                or_=or_expression,
            )
            return parse_rows(Lead, result)

        return await self._cache.fetch(key, load)

    async def add_lead(
        self,
        *,
        full_name: str,
        phone: str,
        email: str | None = None,
        **fields: Any,
    ) -> Lead:
        """
        Create a lead, reusing the customer with the same phone if there is one.
        """

        normalized = normalize_phone(phone)
        if normalized is None:
            raise ValueError(f"Invalid phone number: {phone!r}")

        customer_row = await self._client.select_one("customers", {"phone": eq(normalized)})
        if customer_row is None:
            payload: dict[str, Any] = {"full_name": full_name.strip(), "phone": normalized}
            if email:
                payload["email"] = email
            customer = parse_first(Customer, await self._client.insert("customers", payload))
            self._cache.invalidate((CUSTOMERS,))
        else:
            customer = Customer.model_validate(customer_row)

        lead_payload = {key: value for key, value in fields.items() if value is not None}
        lead_payload["customer_id"] = customer.id
        lead_payload.setdefault("status_main", STATUS_NEW)
        lead = parse_first(Lead, await self._client.insert("leads", lead_payload))

        for matcher in LEAD_DEPENDENTS:
            self._cache.invalidate(matcher)
        logger.info("Created lead %s for customer %s", lead.id, customer.id)
        return lead

    async def update_lead(self, lead_id: str, updates: dict[str, Any]) -> Lead:
        """
        Optimistically update lead fields.

        The lead's detail entry, every cached lead list and the leads embedded
        in cached customers change immediately; the server row replaces them
        once the write is confirmed.
        """

        lead_id = require_id(lead_id, "lead_id")
        targets = [
            detail_target((LEAD, lead_id)),
            list_target((LEADS,), lead_id),
            nested_list_target((CUSTOMER,), "leads", lead_id),
        ]

        async def remote(cleaned: dict[str, Any]) -> Lead:
            result = await self._client.update("leads", lead_id, cleaned)
            return parse_first(Lead, result)

        return await self._reconciler.update(
            updates,
            targets,
            remote,
            invalidate=((LEAD, lead_id), *LEAD_DEPENDENTS),
            success_message="השדה עודכן בהצלחה",
            failure_message="נכשל בעדכון השדה",
        )

    async def update_lead_status(
        self,
        lead_id: str,
        status_main: str,
        status_sub: str | None = None,
    ) -> Lead:
        return await self.update_lead(
            lead_id,
            {"status_main": status_main, "status_sub": status_sub},
        )

    async def bulk_delete_leads(self, lead_ids: Iterable[str]) -> None:
        ids = require_ids(lead_ids, "lead_ids")

        async def remote(_: dict[str, Any]) -> Any:
            return (await self._client.delete("leads", ids)).unwrap()

        await self._reconciler.remove(
            [removal_target((LEADS,), ids)],
            remote,
            invalidate=LEAD_DEPENDENTS,
            success_message=f"נמחקו {len(ids)} לידים",
            failure_message="נכשל במחיקת הלידים",
        )
        for lead_id in ids:
            self._cache.remove((LEAD, lead_id))
