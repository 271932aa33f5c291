"""Command line entry points.

    leadview sync-leads
    leadview sync-leads --workspace "Client Name"
    leadview sync-leads --campaign 1234 --dry-run
"""

import argparse
import asyncio
from typing import List, Optional

import httpx

from .config import settings
from .schemas.errors import SyncError
from .schemas.lead import SyncStats
from .services.lead_sync_service import BisonClient, LeadSyncService, SupabaseClient
from .utils.logger import setup_logger

logger = setup_logger("leadview", settings.logging.log_file("leadview"))


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="leadview", description="Leadview maintenance commands")
    subcommands = parser.add_subparsers(dest="command", required=True)

    sync = subcommands.add_parser("sync-leads", help="Sync Bison campaign leads into Supabase all_leads")
    sync.add_argument("--workspace", help="Only sync the workspace with this name")
    sync.add_argument("--campaign", help="Only sync the campaign with this id")
    sync.add_argument("--dry-run", action="store_true", help="Fetch and transform without writing")
    return parser


async def sync_leads(workspace: Optional[str], campaign: Optional[str], dry_run: bool) -> SyncStats:
    timeout = httpx.Timeout(settings.sync.REQUEST_TIMEOUT)
    async with httpx.AsyncClient(timeout=timeout) as http:
        service = LeadSyncService(
            bison=BisonClient(http),
            supabase=SupabaseClient(http),
            dry_run=dry_run,
        )
        return await service.run(workspace, campaign)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_arg_parser().parse_args(argv)

    if args.command == "sync-leads":
        logger.info(f"Mode: {'DRY RUN (no changes)' if args.dry_run else 'LIVE'}")
        try:
            asyncio.run(sync_leads(args.workspace, args.campaign, args.dry_run))
        except SyncError as e:
            logger.error(f"Fatal error: {e.message}")
            return 1
        if args.dry_run:
            logger.info("DRY RUN - no changes were made to the database")
        return 0

    return 2


if __name__ == "__main__":
    raise SystemExit(main())
