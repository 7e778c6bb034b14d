from __future__ import annotations

from typing import Any

from coach_crm.cache import entity_target, list_target
from coach_crm.core.validation import require_id
from coach_crm.data.base import DataSource, parse_first, parse_rows
from coach_crm.db.models import PLAN_MODELS, Plan, PlanKind
from coach_crm.db.supabase import eq

PLAN = "plan"
PLANS = "plans"


class PlansData(DataSource):
    """
    Workout, nutrition and supplement plans assigned to a customer.
    """

    async def fetch_active_plan(self, kind: PlanKind, customer_id: str) -> Plan | None:
        customer_id = require_id(customer_id, "customer_id")
        model = PLAN_MODELS[kind]

        async def load() -> Plan | None:
            result = await self._client.select(
                kind.table,
                {"customer_id": eq(customer_id), "is_active": "eq.true"},
                ["created_at.desc"],
                limit=1,
            )
            plans = parse_rows(model, result)
            return plans[0] if plans else None

        return await self._cache.fetch((PLAN, kind.value, customer_id), load)

    async def list_plans(self, kind: PlanKind, customer_id: str) -> list[Plan]:
        customer_id = require_id(customer_id, "customer_id")
        model = PLAN_MODELS[kind]

        async def load() -> list[Plan]:
            result = await self._client.select(
                kind.table,
                {"customer_id": eq(customer_id)},
                ["start_date.desc"],
            )
            return parse_rows(model, result)

        return await self._cache.fetch((PLANS, kind.value, customer_id), load)

    async def update_plan(self, kind: PlanKind, plan_id: str, updates: dict[str, Any]) -> Plan:
        plan_id = require_id(plan_id, "plan_id")
        model = PLAN_MODELS[kind]
        targets = [
            entity_target((PLAN, kind.value), plan_id),
            list_target((PLANS, kind.value), plan_id),
        ]

        async def remote(cleaned: dict[str, Any]) -> Plan:
            return parse_first(model, await self._client.update(kind.table, plan_id, cleaned))

        plan = await self._reconciler.update(
            updates,
            targets,
            remote,
            invalidate=(("plans-history",),),
            success_message="התוכנית עודכנה",
            failure_message="נכשל בעדכון התוכנית",
        )
        # Deactivating a plan changes which plan is the active one
        if "is_active" in updates:
            self._cache.invalidate((PLAN, kind.value))
        return plan
