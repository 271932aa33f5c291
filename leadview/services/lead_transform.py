"""Mapping of Bison lead payloads onto ``all_leads`` rows."""

import re
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd

from ..schemas.lead import Campaign, LeadRecord

CUSTOM_FIELDS = [
    "company_domain",
    "industry",
    "seniority_level",
    "annual_revenue",
    "company_size",
    "year_founded",
    "company_hq_city",
    "company_hq_state",
    "company_hq_country",
    "tech_stack",
    "is_hiring",
    "specialty_signal_a",
    "specialty_signal_b",
    "specialty_signal_c",
    "specialty_signal_d",
]

# Workspaces name their custom variables differently
CUSTOM_VARIABLE_ALIASES: Dict[str, str] = {
    "company_domain": "company_domain",
    "companydomain": "company_domain",
    "domain": "company_domain",
    "industry": "industry",
    "seniority_level": "seniority_level",
    "seniority": "seniority_level",
    "level": "seniority_level",
    "annual_revenue": "annual_revenue",
    "annualrevenue": "annual_revenue",
    "revenue": "annual_revenue",
    "company_size": "company_size",
    "companysize": "company_size",
    "employees": "company_size",
    "employee_count": "company_size",
    "year_founded": "year_founded",
    "yearfounded": "year_founded",
    "founded": "year_founded",
    "founded_year": "year_founded",
    "company_hq_city": "company_hq_city",
    "hq_city": "company_hq_city",
    "city": "company_hq_city",
    "company_hq_state": "company_hq_state",
    "hq_state": "company_hq_state",
    "state": "company_hq_state",
    "company_hq_country": "company_hq_country",
    "hq_country": "company_hq_country",
    "country": "company_hq_country",
    "tech_stack": "tech_stack",
    "techstack": "tech_stack",
    "technologies": "tech_stack",
    "is_hiring": "is_hiring",
    "ishiring": "is_hiring",
    "hiring": "is_hiring",
    "specialty_signal_a": "specialty_signal_a",
    "specialty_signal_b": "specialty_signal_b",
    "specialty_signal_c": "specialty_signal_c",
    "specialty_signal_d": "specialty_signal_d",
}

_NON_IDENTIFIER = re.compile(r"[^a-z0-9_]")


def normalize_variable_name(name: str) -> str:
    return _NON_IDENTIFIER.sub("_", name.lower().strip())


def parse_datetime(value: Any) -> Optional[str]:
    """ISO-8601 UTC string for a date-like value, None when unparseable"""
    if not value:
        return None
    parsed = pd.to_datetime(value, utc=True, errors="coerce")
    if pd.isna(parsed):
        return None
    return parsed.isoformat()


def _clean(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    return value.strip() or None


def extract_custom_variables(custom_variables: Any) -> Dict[str, Any]:
    mapped: Dict[str, Any] = {field: None for field in CUSTOM_FIELDS}
    if not isinstance(custom_variables, list):
        return mapped

    for item in custom_variables:
        if not isinstance(item, dict) or not item.get("name"):
            continue
        field = CUSTOM_VARIABLE_ALIASES.get(normalize_variable_name(str(item["name"])))
        value = item.get("value")
        if not field or not value:
            continue
        if field == "is_hiring":
            text = str(value)
            mapped[field] = text.lower() == "true" or text == "1"
        else:
            mapped[field] = str(value)
    return mapped


def extract_campaign_info(lead: Dict[str, Any], campaign: Campaign) -> Tuple[Optional[str], Optional[str]]:
    """Campaign id and name for a lead.

    A ``campaign_name`` custom variable wins, then the first
    ``lead_campaign_data`` entry, then the campaign being synced.
    """
    for item in lead.get("custom_variables") or []:
        if not isinstance(item, dict):
            continue
        if str(item.get("name") or "").lower() == "campaign_name" and item.get("value"):
            return campaign.campaign_id, item["value"]

    campaign_data: List[Dict[str, Any]] = lead.get("lead_campaign_data") or []
    if campaign_data and isinstance(campaign_data[0], dict):
        first = campaign_data[0]
        campaign_id = first.get("campaign_id") or first.get("id") or campaign.campaign_id
        campaign_name = first.get("campaign_name") or first.get("name") or campaign.campaign_name
        return (str(campaign_id) if campaign_id else None), campaign_name

    return campaign.campaign_id, campaign.campaign_name


def transform_lead(lead: Dict[str, Any], workspace: str, campaign: Campaign) -> Optional[LeadRecord]:
    """Build an ``all_leads`` row, or None when the lead cannot be keyed"""
    raw_email = lead.get("email")
    if not isinstance(raw_email, str):
        return None
    email = raw_email.strip().lower()
    if not email or "@" not in email:
        return None

    campaign_id, campaign_name = extract_campaign_info(lead, campaign)
    if not campaign_id:
        return None

    custom = extract_custom_variables(lead.get("custom_variables"))
    stats = lead.get("overall_stats") or {}
    replies = stats.get("replies") or 0

    return LeadRecord(
        email=email,
        campaign_id=campaign_id,
        client=workspace,
        first_name=_clean(lead.get("first_name")),
        last_name=_clean(lead.get("last_name")),
        campaign_name=campaign_name,
        created_time=parse_datetime(lead.get("created_at")),
        job_title=_clean(lead.get("title")),
        company=_clean(lead.get("company")),
        status=None,
        emails_sent=stats.get("emails_sent") or 0,
        replies=replies,
        unique_replies=replies,
        **custom,
    )
