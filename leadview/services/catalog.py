from typing import List

from ..config import settings
from ..schemas.filter import DateBucket, FieldCatalog, FieldDefinition, SortKind, ValueKind

BOOLEAN_OPTIONS = ["true", "false"]
DATE_BUCKET_OPTIONS = [bucket.value for bucket in DateBucket]
STAGE_OPTIONS = ["new", "engaged", "meeting_booked", "qualified", "demo", "proposal", "closed"]


def _text(key: str, label: str, **kwargs) -> FieldDefinition:
    return FieldDefinition(key=key, label=label, value_kind=ValueKind.TEXT, **kwargs)


def _flag(key: str, label: str) -> FieldDefinition:
    return FieldDefinition(
        key=key,
        label=label,
        value_kind=ValueKind.SELECT,
        options=BOOLEAN_OPTIONS,
        default="false",
    )


def _date(key: str, label: str, **kwargs) -> FieldDefinition:
    return FieldDefinition(
        key=key,
        label=label,
        value_kind=ValueKind.DATE_BUCKET,
        options=DATE_BUCKET_OPTIONS,
        **kwargs,
    )


CONTACT_FIELDS: List[FieldDefinition] = [
    # Personal info
    _text("full_name", "Lead Name", fallback_sources=["first_name", "last_name"]),
    _text("email", "Email"),
    _text("job_title", "Job Title"),
    _text("seniority_level", "Seniority Level"),
    _text("lead_phone", "Phone"),
    # Company info
    _text("company", "Organization"),
    _text("company_domain", "Company Domain"),
    _text("company_size", "Company Size"),
    _text("industry", "Industry"),
    _text("annual_revenue", "Annual Revenue"),
    _text("company_hq_city", "HQ City"),
    _text("company_hq_state", "HQ State"),
    _text("company_hq_country", "HQ Country"),
    _text("business_model", "Business Model"),
    _text("funding_stage", "Funding Stage"),
    _flag("is_hiring", "Is Hiring"),
    # Pipeline & status
    FieldDefinition(key="stage", label="Stage", value_kind=ValueKind.SELECT, options=STAGE_OPTIONS),
    _flag("meeting_booked", "Meeting Booked"),
    _flag("qualified", "Qualified"),
    _flag("closed", "Closed Won"),
    # Sales
    _text("epv", "EPV", sort_kind=SortKind.NUMBER),
    _text("assignee", "Assignee"),
    # Campaign
    _text("campaign_name", "Campaign Name"),
    _text("lead_source", "Lead Source"),
    # Dates
    _date("last_activity", "Last Activity", source="updated_at"),
    _date("created_at", "Created Date"),
    _date("next_touchpoint", "Next Touchpoint"),
    _date("meeting_date", "Meeting Date"),
    # Sort only
    _text("name", "Name", source="full_name", fallback_sources=["first_name"]),
]


def build_contact_catalog() -> FieldCatalog:
    return FieldCatalog(
        fields=CONTACT_FIELDS,
        search_fields=settings.query.SEARCH_FIELDS,
        default_sort_field=settings.query.DEFAULT_SORT_FIELD,
    )


CONTACT_CATALOG = build_contact_catalog()
