from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class Workspace(BaseModel):
    name: str
    api_key: str


class Campaign(BaseModel):
    campaign_id: str
    campaign_name: Optional[str] = None
    client: Optional[str] = None


class LeadRecord(BaseModel):
    """Row of the ``all_leads`` table"""
    email: str
    campaign_id: str
    client: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    campaign_name: Optional[str] = None
    created_time: Optional[str] = None
    industry: Optional[str] = None
    job_title: Optional[str] = None
    seniority_level: Optional[str] = None
    company: Optional[str] = None
    company_domain: Optional[str] = None
    annual_revenue: Optional[str] = None
    company_size: Optional[str] = None
    year_founded: Optional[str] = None
    company_hq_city: Optional[str] = None
    company_hq_state: Optional[str] = None
    company_hq_country: Optional[str] = None
    tech_stack: Optional[str] = None
    is_hiring: Optional[bool] = None
    specialty_signal_a: Optional[str] = None
    specialty_signal_b: Optional[str] = None
    specialty_signal_c: Optional[str] = None
    specialty_signal_d: Optional[str] = None
    status: Optional[str] = None
    emails_sent: int = 0
    replies: int = 0
    unique_replies: int = 0

    @property
    def pair_key(self) -> tuple:
        return (self.email, self.campaign_id)


class BatchResult(BaseModel):
    inserted: int = 0
    skipped: int = 0
    errors: int = 0


class CampaignResult(BaseModel):
    fetched: int = 0
    processed: int = 0
    errors: int = 0


class SyncStats(BaseModel):
    workspaces_processed: int = 0
    campaigns_processed: int = 0
    total_leads_fetched: int = 0
    inserted: int = 0
    errors: int = 0
    skipped: int = 0
    start_time: datetime = Field(default_factory=datetime.now)
    end_time: Optional[datetime] = None

    @property
    def duration_seconds(self) -> float:
        end = self.end_time or datetime.now()
        return (end - self.start_time).total_seconds()
