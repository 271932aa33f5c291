import pytest

from leadview.schemas.lead import Campaign
from leadview.services.lead_transform import (
    extract_campaign_info,
    extract_custom_variables,
    normalize_variable_name,
    parse_datetime,
    transform_lead,
)


@pytest.fixture
def campaign():
    return Campaign(campaign_id="42", campaign_name="Q3 Outbound", client="Acme Agency")


def test_normalize_variable_name():
    assert normalize_variable_name("  Company Domain ") == "company_domain"
    assert normalize_variable_name("HQ-City") == "hq_city"

def test_custom_variable_aliases():
    mapped = extract_custom_variables([
        {"name": "Domain", "value": "acme.com"},
        {"name": "Employees", "value": 250},
        {"name": "hiring", "value": "TRUE"},
        {"name": "unmapped", "value": "x"},
        {"name": "industry", "value": ""},
        "garbage",
    ])

    assert mapped["company_domain"] == "acme.com"
    assert mapped["company_size"] == "250"
    assert mapped["is_hiring"] is True
    assert mapped["industry"] is None
    assert "unmapped" not in mapped

def test_is_hiring_accepts_one():
    assert extract_custom_variables([{"name": "is_hiring", "value": "1"}])["is_hiring"] is True
    assert extract_custom_variables([{"name": "is_hiring", "value": "no"}])["is_hiring"] is False

def test_campaign_name_variable_wins(campaign):
    lead = {
        "custom_variables": [{"name": "Campaign_Name", "value": "Renamed"}],
        "lead_campaign_data": [{"campaign_id": 7, "campaign_name": "Other"}],
    }
    assert extract_campaign_info(lead, campaign) == ("42", "Renamed")

def test_lead_campaign_data_is_second_choice(campaign):
    lead = {"lead_campaign_data": [{"id": 7, "name": "Other"}]}
    assert extract_campaign_info(lead, campaign) == ("7", "Other")

def test_campaign_falls_back_to_synced_campaign(campaign):
    assert extract_campaign_info({}, campaign) == ("42", "Q3 Outbound")

def test_parse_datetime():
    assert parse_datetime("2024-01-05T10:00:00Z") == "2024-01-05T10:00:00+00:00"
    assert parse_datetime("not a date") is None
    assert parse_datetime(None) is None

def test_transform_lead(campaign):
    record = transform_lead(
        {
            "email": "  Ada@Acme.COM ",
            "first_name": " Ada ",
            "last_name": "",
            "title": "CTO",
            "company": "Acme",
            "created_at": "2024-01-05T10:00:00Z",
            "custom_variables": [{"name": "industry", "value": "Software"}],
            "overall_stats": {"emails_sent": 3, "replies": 1},
        },
        "Acme Agency",
        campaign,
    )

    assert record.email == "ada@acme.com"
    assert record.pair_key == ("ada@acme.com", "42")
    assert record.client == "Acme Agency"
    assert record.first_name == "Ada"
    assert record.last_name is None
    assert record.job_title == "CTO"
    assert record.industry == "Software"
    assert record.created_time == "2024-01-05T10:00:00+00:00"
    assert (record.emails_sent, record.replies, record.unique_replies) == (3, 1, 1)

@pytest.mark.parametrize("lead", [
    {},
    {"email": ""},
    {"email": "no-at-sign"},
    {"email": 12},
])
def test_transform_skips_unkeyed_leads(campaign, lead):
    assert transform_lead(lead, "Acme Agency", campaign) is None
