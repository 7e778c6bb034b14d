"""
Fillout form submissions as meetings.

A submission carries the lead it was sent to in its URL parameters. Answers
are flattened into `meeting_data` keyed by question name. Fillout retries
deliveries, so a submission that was already stored updates its meeting
instead of creating a second one.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Mapping, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from coach_crm.core.validation import looks_like_uuid
from coach_crm.data.base import parse_first
from coach_crm.db.models import Meeting
from coach_crm.db.supabase import SupabaseClient, eq

logger = logging.getLogger(__name__)

Answer = Union[str, int, float, bool, list[Any], dict[str, Any], None]


class UrlParameter(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    name: Optional[str] = None
    value: Optional[str] = None


class Question(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    name: Optional[str] = None
    type: Optional[str] = None
    value: Answer = None


class FilloutSubmission(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    submission_id: str = Field(
        validation_alias=AliasChoices("submissionId", "submission_id", "id"),
        min_length=1,
    )
    form_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("formId", "form_id"))
    form_name: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("formName", "form_name")
    )
    submission_time: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("submissionTime", "submission_time")
    )
    url_parameters: list[UrlParameter] = Field(
        default_factory=list, validation_alias=AliasChoices("urlParameters", "url_parameters")
    )
    questions: list[Question] = Field(default_factory=list)

    def url_parameter(self, name: str) -> str | None:
        for param in self.url_parameters:
            if name in (param.name, param.id) and param.value:
                return param.value
        return None


def extract_lead_id(submission: FilloutSubmission) -> str | None:
    lead_id = submission.url_parameter("lead_id")
    if lead_id:
        return lead_id
    # Some forms pass the id as a hidden question instead
    for question in submission.questions:
        label = (question.name or question.id or "").lower()
        if "lead_id" in label and looks_like_uuid(question.value):
            return str(question.value).strip()
    for question in submission.questions:
        if looks_like_uuid(question.value):
            return str(question.value).strip()
    return None


def build_meeting_data(submission: FilloutSubmission) -> dict[str, Any]:
    data: dict[str, Any] = {}
    for index, question in enumerate(submission.questions):
        key = question.name or question.id or f"question_{index}"
        if question.value is not None:
            data[key] = question.value

    data["_formId"] = submission.form_id
    data["_formName"] = submission.form_name
    data["_submissionTime"] = submission.submission_time or datetime.now(timezone.utc).isoformat()
    return data


async def ingest_submission(
    client: SupabaseClient,
    payload: FilloutSubmission | Mapping[str, Any],
) -> Meeting:
    """
    Store a submission as a meeting row and return it.

    Raises pydantic.ValidationError when the payload has no submission id
    and SupabaseError when a write fails.
    """

    submission = (
        payload
        if isinstance(payload, FilloutSubmission)
        else FilloutSubmission.model_validate(payload)
    )

    lead_id = extract_lead_id(submission)
    customer_id = submission.url_parameter("customer_id")
    if lead_id and not customer_id:
        lead = await client.select_one("leads", {"id": eq(lead_id)}, columns="customer_id")
        if lead is not None:
            customer_id = lead.get("customer_id")
        else:
            logger.warning("Submission %s references unknown lead %s", submission.submission_id, lead_id)

    row = {
        "meeting_data": build_meeting_data(submission),
        "lead_id": lead_id,
        "customer_id": customer_id,
    }

    existing = await client.select_one(
        "meetings",
        {"fillout_submission_id": eq(submission.submission_id)},
        columns="id",
    )
    if existing is not None:
        logger.info("Submission %s already stored, updating meeting %s", submission.submission_id, existing["id"])
        row["updated_at"] = datetime.now(timezone.utc).isoformat()
        return parse_first(Meeting, await client.update("meetings", existing["id"], row))

    meeting = parse_first(
        Meeting,
        await client.insert("meetings", {**row, "fillout_submission_id": submission.submission_id}),
    )
    logger.info("Created meeting %s from submission %s", meeting.id, submission.submission_id)
    return meeting
