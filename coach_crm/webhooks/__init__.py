from .fillout import FilloutSubmission, build_meeting_data, extract_lead_id, ingest_submission

__all__ = ["FilloutSubmission", "build_meeting_data", "extract_lead_id", "ingest_submission"]
