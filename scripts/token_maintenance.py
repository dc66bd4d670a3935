#!/usr/bin/env python3
"""
WiFi Access Gateway Token Maintenance

Sends expiration SMS for expired tokens and, when the auto_cleanup setting
is enabled, deletes tokens that expired more than cleanup_retention_days ago.
Designed to run from cron.

Usage:
    # Notify and clean up (for cron)
    python3 scripts/token_maintenance.py

    # Report only: send nothing, delete nothing
    python3 scripts/token_maintenance.py --dry-run

    # Only purge old tokens
    python3 scripts/token_maintenance.py --skip-notify
"""

import argparse
import asyncio
import sys
from dataclasses import dataclass
from datetime import timedelta

from app.config import settings
from app.db.models import utc_now
from app.db.session import close_engines, get_write_session
from app.observability.logging import get_logger, setup_logging
from app.services.expiration_notifier import ExpirationNotifier
from app.services.settings_store import SettingsStore
from app.services.sms_provider import build_sms_provider
from app.services.token_store import TokenStore

logger = get_logger("scripts.token_maintenance")


@dataclass(frozen=True)
class MaintenanceReport:
    """What a maintenance run did (or would do, in a dry run)."""

    notified: int
    purged: int
    cleanup_enabled: bool
    dry_run: bool


async def run_maintenance(
    dry_run: bool = False,
    notify: bool = True,
    cleanup: bool = True,
) -> MaintenanceReport:
    """Run the expiration sweep and retention cleanup once."""
    now = utc_now()
    notified = 0
    purged = 0

    async with get_write_session() as session:
        store = TokenStore(session)

        if notify:
            if dry_run:
                notified = len(await store.list_expired_unrevoked(now))
            else:
                sms_provider = build_sms_provider(settings)
                try:
                    notified = await ExpirationNotifier(session, sms_provider).notify_expired(now)
                finally:
                    await sms_provider.close()

        portal = await SettingsStore(session).get_settings()
        if cleanup and portal.auto_cleanup:
            cutoff = now - timedelta(days=portal.cleanup_retention_days)
            if dry_run:
                purged = await store.count_expired_before(cutoff)
            else:
                purged = await store.purge_expired(cutoff)
                await session.commit()
            logger.info(
                "token_cleanup",
                cutoff=cutoff.isoformat(),
                purged=purged,
                dry_run=dry_run,
            )

    report = MaintenanceReport(
        notified=notified,
        purged=purged,
        cleanup_enabled=portal.auto_cleanup,
        dry_run=dry_run,
    )
    logger.info(
        "token_maintenance_completed",
        notified=report.notified,
        purged=report.purged,
        cleanup_enabled=report.cleanup_enabled,
        dry_run=report.dry_run,
    )
    return report


async def _main(args: argparse.Namespace) -> MaintenanceReport:
    try:
        return await run_maintenance(
            dry_run=args.dry_run,
            notify=not args.skip_notify,
            cleanup=not args.skip_cleanup,
        )
    finally:
        await close_engines()


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Expiration notifications and token cleanup",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Hourly from cron
  python3 scripts/token_maintenance.py

  # See what would happen
  python3 scripts/token_maintenance.py --dry-run
        """,
    )
    parser.add_argument(
        "--dry-run", action="store_true", help="Don't send or delete, just report counts"
    )
    parser.add_argument("--skip-notify", action="store_true", help="Skip expiration SMS")
    parser.add_argument("--skip-cleanup", action="store_true", help="Skip the retention purge")

    args = parser.parse_args()
    setup_logging()

    report = asyncio.run(_main(args))
    print(
        f"{'Would notify' if report.dry_run else 'Notified'} {report.notified} token(s); "
        f"{'would purge' if report.dry_run else 'purged'} {report.purged} token(s)"
        + ("" if report.cleanup_enabled else " (auto_cleanup disabled)")
    )
    sys.exit(0)


if __name__ == "__main__":
    main()
