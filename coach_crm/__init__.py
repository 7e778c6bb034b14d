"""
Client layer for the coaching CRM.

This package contains:
- Shared configuration and utilities (`coach_crm.core`)
- Supabase REST/Auth integration and row models (`coach_crm.db`)
- Query cache and optimistic mutation reconciler (`coach_crm.cache`)
- Per-entity data access (`coach_crm.data`)
- Client-only UI state reducers (`coach_crm.state`)
- Background refresh scheduling (`coach_crm.refresh`)
- Fillout form submission ingestion (`coach_crm.webhooks`)
- Telegram bot surface for trainers (`coach_crm.bot`)
"""
