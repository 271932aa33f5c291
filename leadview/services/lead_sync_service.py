import asyncio
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Set, Tuple

import httpx

from ..config import settings
from ..schemas.errors import SyncError
from ..schemas.lead import BatchResult, Campaign, CampaignResult, LeadRecord, SyncStats, Workspace
from ..utils.logger import setup_logger
from .lead_transform import transform_lead

logger = setup_logger("lead_sync", settings.logging.log_file("lead_sync"))

Sleep = Callable[[float], Awaitable[None]]


def format_duration(seconds: float) -> str:
    total = int(seconds)
    minutes, secs = divmod(total, 60)
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours}h {minutes}m {secs}s"
    if minutes:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


def _chunks(items: List[Any], size: int) -> Iterable[List[Any]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


def extract_leads(payload: Any) -> List[Dict[str, Any]]:
    """Leads from a page payload: a bare list, ``{data: [...]}`` or ``{leads: [...]}``"""
    leads: Any = []
    if isinstance(payload, list):
        leads = payload
    elif isinstance(payload, dict):
        if isinstance(payload.get("data"), list):
            leads = payload["data"]
        elif isinstance(payload.get("leads"), list):
            leads = payload["leads"]
    return [lead for lead in leads if isinstance(lead, dict) and lead.get("email")]


def has_more_pages(payload: Any, page: int, returned: int, per_page: int) -> bool:
    """Pagination from ``meta``, then ``links``, then the short-page rule"""
    if isinstance(payload, dict):
        meta = payload.get("meta")
        if isinstance(meta, dict):
            current = meta.get("current_page") or page
            last = meta.get("last_page")
            return bool(last) and current < last
        links = payload.get("links")
        if isinstance(links, dict) and not links.get("next"):
            return False
    return returned >= per_page


class BisonClient:
    """Paginated reader for the Bison cold-email API"""

    def __init__(
        self,
        http: httpx.AsyncClient,
        base_url: Optional[str] = None,
        per_page: Optional[int] = None,
        max_retries: Optional[int] = None,
        retry_delay: Optional[float] = None,
        page_delay: Optional[float] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.http = http
        self.base_url = (base_url or settings.sync.BISON_API_BASE).rstrip("/")
        self.per_page = per_page or settings.sync.PER_PAGE
        self.max_retries = max_retries or settings.sync.MAX_RETRIES
        self.retry_delay = settings.sync.RETRY_DELAY_MS / 1000 if retry_delay is None else retry_delay
        self.page_delay = settings.sync.API_DELAY_MS / 1000 if page_delay is None else page_delay
        self.sleep = sleep

    def _rate_limit_delay(self, response: httpx.Response, attempt: int) -> float:
        retry_after = response.headers.get("Retry-After")
        if retry_after:
            try:
                return max(float(retry_after), 0.0)
            except ValueError:
                logger.debug(f"Ignoring non-numeric Retry-After header: {retry_after}")
        return self.retry_delay * 2 ** (attempt - 1)

    async def get_with_retry(self, url: str, headers: Dict[str, str], params: Dict[str, Any]) -> httpx.Response:
        """GET honoring 429 Retry-After and retrying transport failures"""
        for attempt in range(1, self.max_retries + 1):
            try:
                response = await self.http.get(url, headers=headers, params=params)
            except httpx.TransportError as e:
                if attempt == self.max_retries:
                    raise SyncError(f"Request to {url} failed after {attempt} attempts: {str(e)}") from e
                delay = self.retry_delay * attempt
                logger.warning(f"Request failed (attempt {attempt}/{self.max_retries}), retrying in {delay:.1f}s: {str(e)}")
                await self.sleep(delay)
                continue

            if response.status_code == 429:
                delay = self._rate_limit_delay(response, attempt)
                logger.warning(f"Rate limited (attempt {attempt}/{self.max_retries}), waiting {delay:.1f}s")
                await self.sleep(delay)
                continue

            return response

        raise SyncError(f"Request to {url} failed after {self.max_retries} retries", "retries_exhausted")

    async def fetch_campaign_leads(self, campaign_id: str, api_key: str) -> List[Dict[str, Any]]:
        """All leads of one campaign, one page at a time"""
        url = f"{self.base_url}/campaigns/{campaign_id}/leads"
        headers = {
            "Authorization": f"Bearer {api_key}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        leads: List[Dict[str, Any]] = []
        page = 1

        while True:
            try:
                response = await self.get_with_retry(url, headers, {"page": page, "per_page": self.per_page})
                if response.status_code in (400, 404):
                    break
                if response.is_error:
                    raise SyncError(f"API error {response.status_code}: {response.text[:200]}")
                payload = response.json()
            except (SyncError, ValueError) as e:
                logger.warning(f"Error fetching page {page} of campaign {campaign_id}: {str(e)}")
                break

            page_leads = extract_leads(payload)
            if not page_leads:
                break
            leads.extend(page_leads)

            if not has_more_pages(payload, page, len(page_leads), self.per_page):
                break
            page += 1
            await self.sleep(self.page_delay)

        return leads


class SupabaseClient:
    """Minimal PostgREST client for the sync tables"""

    def __init__(self, http: httpx.AsyncClient, url: Optional[str] = None, key: Optional[str] = None):
        url = url or settings.sync.SUPABASE_URL
        key = key or settings.sync.SUPABASE_KEY
        if not url or not key:
            raise SyncError(
                "Missing Supabase credentials: set SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY",
                "missing_credentials",
            )
        self.http = http
        self.rest_url = f"{url.rstrip('/')}/rest/v1"
        self.headers = {
            "apikey": key,
            "Authorization": f"Bearer {key}",
            "Accept": "application/json",
        }

    async def _select(self, table: str, params: Dict[str, str]) -> List[Dict[str, Any]]:
        response = await self.http.get(f"{self.rest_url}/{table}", headers=self.headers, params=params)
        if response.is_error:
            raise SyncError(f"Failed to read {table}: {response.status_code} {response.text[:200]}")
        return response.json() or []

    async def fetch_workspaces(self, workspace_filter: Optional[str] = None) -> List[Workspace]:
        rows = await self._select("Clients", {"select": 'Business,"Api Key - Bison"', "order": "Business"})
        workspaces = []
        for row in rows:
            name = row.get("Business")
            api_key = row.get("Api Key - Bison")
            if not name or not api_key:
                continue
            if workspace_filter and name != workspace_filter:
                continue
            workspaces.append(Workspace(name=name, api_key=api_key))
        return workspaces

    async def fetch_campaigns(self, workspace: Workspace, campaign_filter: Optional[str] = None) -> List[Campaign]:
        rows = await self._select(
            "Campaigns",
            {"select": "campaign_id,campaign_name,client", "client": f"eq.{workspace.name}"},
        )
        campaigns = [
            Campaign(
                campaign_id=str(row["campaign_id"]),
                campaign_name=row.get("campaign_name"),
                client=row.get("client"),
            )
            for row in rows if row.get("campaign_id")
        ]
        if campaign_filter:
            campaigns = [c for c in campaigns if c.campaign_id == campaign_filter]
        return campaigns

    async def existing_pairs(self, emails: List[str]) -> Set[Tuple[str, str]]:
        quoted = ",".join(f'"{email}"' for email in emails)
        rows = await self._select("all_leads", {"select": "email,campaign_id", "email": f"in.({quoted})"})
        return {(row["email"], str(row["campaign_id"])) for row in rows}

    async def insert(self, table: str, rows: List[Dict[str, Any]]) -> None:
        response = await self.http.post(
            f"{self.rest_url}/{table}",
            headers={**self.headers, "Prefer": "return=minimal"},
            json=rows,
        )
        if response.is_error:
            raise SyncError(f"Insert into {table} failed: {response.status_code} {response.text[:200]}")


class LeadSyncService:
    def __init__(
        self,
        bison: BisonClient,
        supabase: SupabaseClient,
        dry_run: bool = False,
        batch_size: Optional[int] = None,
        chunk_size: Optional[int] = None,
        campaign_delay: Optional[float] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.bison = bison
        self.supabase = supabase
        self.dry_run = dry_run
        self.batch_size = batch_size or settings.sync.SUPABASE_BATCH_SIZE
        self.chunk_size = chunk_size or settings.sync.INSERT_CHUNK_SIZE
        self.campaign_delay = settings.sync.CAMPAIGN_DELAY_MS / 1000 if campaign_delay is None else campaign_delay
        self.sleep = sleep
        self.stats = SyncStats()

    async def insert_batch(self, records: List[LeadRecord]) -> BatchResult:
        """Insert records whose (email, campaign_id) pair is not stored yet"""
        if not records:
            return BatchResult()
        if self.dry_run:
            logger.info(f"[DRY RUN] Would insert {len(records)} leads")
            return BatchResult(inserted=len(records))

        try:
            existing: Set[Tuple[str, str]] = set()
            for chunk in _chunks(records, self.chunk_size):
                existing |= await self.supabase.existing_pairs([record.email for record in chunk])

            new_records = [record for record in records if record.pair_key not in existing]
            result = BatchResult(skipped=len(records) - len(new_records))

            for chunk in _chunks(new_records, self.chunk_size):
                try:
                    await self.supabase.insert("all_leads", [record.model_dump() for record in chunk])
                    result.inserted += len(chunk)
                except SyncError as e:
                    logger.warning(f"Batch insert failed, retrying row by row: {str(e)}")
                    for record in chunk:
                        try:
                            await self.supabase.insert("all_leads", [record.model_dump()])
                            result.inserted += 1
                        except SyncError:
                            result.errors += 1
            return result
        except (SyncError, httpx.HTTPError) as e:
            logger.error(f"Unexpected error in batch insert: {str(e)}")
            return BatchResult(errors=len(records))

    async def process_campaign(self, campaign: Campaign, workspace: Workspace) -> CampaignResult:
        leads = await self.bison.fetch_campaign_leads(campaign.campaign_id, workspace.api_key)
        if not leads:
            return CampaignResult()

        records = []
        for lead in leads:
            record = transform_lead(lead, workspace.name, campaign)
            if record is None:
                self.stats.skipped += 1
            else:
                records.append(record)

        result = CampaignResult(fetched=len(leads))
        for batch in _chunks(records, self.batch_size):
            batch_result = await self.insert_batch(batch)
            result.processed += batch_result.inserted
            result.errors += batch_result.errors
            self.stats.skipped += batch_result.skipped
        return result

    async def process_workspace(self, workspace: Workspace, campaign_filter: Optional[str] = None) -> None:
        logger.info(f"Processing workspace: {workspace.name}")
        try:
            campaigns = await self.supabase.fetch_campaigns(workspace, campaign_filter)
        except (SyncError, httpx.HTTPError) as e:
            logger.warning(f"Failed to fetch campaigns for {workspace.name}: {str(e)}")
            campaigns = []

        if not campaigns:
            logger.warning(f"No campaigns found for {workspace.name}")
            return

        logger.info(f"Found {len(campaigns)} campaigns for {workspace.name}")
        fetched = processed = errors = 0

        for index, campaign in enumerate(campaigns, start=1):
            label = (campaign.campaign_name or campaign.campaign_id)[:40]
            try:
                result = await self.process_campaign(campaign, workspace)
                fetched += result.fetched
                processed += result.processed
                errors += result.errors
                self.stats.campaigns_processed += 1
                if result.fetched:
                    logger.info(f"[{index}/{len(campaigns)}] {label}: {result.fetched} leads fetched, {result.processed} synced")
                else:
                    logger.info(f"[{index}/{len(campaigns)}] {label}: no leads")
            except (SyncError, httpx.HTTPError) as e:
                logger.error(f"[{index}/{len(campaigns)}] {label}: {str(e)}")
                self.stats.errors += 1
            await self.sleep(self.campaign_delay)

        self.stats.total_leads_fetched += fetched
        self.stats.inserted += processed
        self.stats.errors += errors
        self.stats.workspaces_processed += 1
        logger.info(f"Workspace complete: {fetched} leads fetched, {processed} synced")

    async def run(self, workspace_filter: Optional[str] = None, campaign_filter: Optional[str] = None) -> SyncStats:
        """Sync every campaign of every workspace into ``all_leads``"""
        self.stats = SyncStats()
        logger.info(f"Starting lead sync ({'DRY RUN' if self.dry_run else 'LIVE'})")

        workspaces = await self.supabase.fetch_workspaces(workspace_filter)
        if not workspaces:
            raise SyncError("No workspaces to process", "no_workspaces")
        logger.info(f"Found {len(workspaces)} workspaces with API keys")

        for workspace in workspaces:
            await self.process_workspace(workspace, campaign_filter)

        self.stats.end_time = datetime.now()
        logger.info(
            f"Sync complete in {format_duration(self.stats.duration_seconds)}: "
            f"{self.stats.workspaces_processed} workspaces, "
            f"{self.stats.campaigns_processed} campaigns, "
            f"{self.stats.total_leads_fetched} leads fetched, "
            f"{self.stats.inserted} synced, {self.stats.skipped} skipped, "
            f"{self.stats.errors} errors"
        )
        return self.stats
