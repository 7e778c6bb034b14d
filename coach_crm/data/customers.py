from __future__ import annotations

from typing import Any, Iterable

from coach_crm.cache import detail_target, list_target, removal_target
from coach_crm.core.validation import require_id, require_ids
from coach_crm.data.base import DataSource, parse_first, parse_rows
from coach_crm.data.leads import CUSTOMER, CUSTOMERS, LEADS
from coach_crm.db.models import Customer
from coach_crm.db.supabase import eq

# PATCH responses do not embed relations; keep the cached ones
_EMBEDDED = ("leads",)


class CustomersData(DataSource):
    async def fetch_customer(self, customer_id: str) -> Customer | None:
        """
        A customer together with all of their leads.
        """

        customer_id = require_id(customer_id, "customer_id")

        async def load() -> Customer | None:
            row = await self._client.select_one(
                "customers",
                {"id": eq(customer_id)},
                columns="*,leads(*)",
            )
            return Customer.model_validate(row) if row else None

        return await self._cache.fetch((CUSTOMER, customer_id), load)

    async def list_customers(
        self,
        search: str | None = None,
        *,
        page: int = 0,
        page_size: int = 50,
    ) -> list[Customer]:
        search = (search or "").strip() or None
        or_expression = None
        if search:
            or_expression = f"full_name.ilike.%{search}%,phone.ilike.%{search}%"
        start = page * page_size

        async def load() -> list[Customer]:
            result = await self._client.select(
                "customers",
                order=["created_at.desc"],
                range=(start, start + page_size - 1),
                or_=or_expression,
            )
            return parse_rows(Customer, result)

        return await self._cache.fetch((CUSTOMERS, search, page, page_size), load)

    async def update_customer(self, customer_id: str, updates: dict[str, Any]) -> Customer:
        customer_id = require_id(customer_id, "customer_id")
        targets = [
            detail_target((CUSTOMER, customer_id), keep=_EMBEDDED),
            list_target((CUSTOMERS,), customer_id, keep=_EMBEDDED),
        ]

        async def remote(cleaned: dict[str, Any]) -> Customer:
            return parse_first(Customer, await self._client.update("customers", customer_id, cleaned))

        return await self._reconciler.update(
            updates,
            targets,
            remote,
            invalidate=((CUSTOMERS,), ("lead-for-customer",)),
            success_message="פרטי הלקוח עודכנו",
            failure_message="נכשל בעדכון הלקוח",
        )

    async def bulk_delete_customers(self, customer_ids: Iterable[str]) -> None:
        ids = require_ids(customer_ids, "customer_ids")

        async def remote(_: dict[str, Any]) -> Any:
            return (await self._client.delete("customers", ids)).unwrap()

        await self._reconciler.remove(
            [removal_target((CUSTOMERS,), ids)],
            remote,
            invalidate=((CUSTOMERS,), (LEADS,)),
            success_message=f"נמחקו {len(ids)} לקוחות",
            failure_message="נכשל במחיקת הלקוחות",
        )
        for customer_id in ids:
            self._cache.remove((CUSTOMER, customer_id))
