#!/usr/bin/env python3
"""
Imported Client Cleanup Script

Removes clients that were created by bulk imports. Manually entered clients
are never touched, even when an import later updated them.

Usage:
    python scripts/cleanup_imports.py                      # Show what would be deleted
    python scripts/cleanup_imports.py --apply              # Delete imported clients (asks first)
    python scripts/cleanup_imports.py --apply --yes        # Delete without prompting
    python scripts/cleanup_imports.py --job <id> --apply   # Only clients created by one job
    python scripts/cleanup_imports.py --apply --clear-jobs # Also remove finished import jobs
"""

import argparse
import sys

from advisor_crm.core.config import settings
from advisor_crm.core.logging_config import configure_logging
from advisor_crm.domain.imports.cleanup import purge_imported_clients, summarize_imported_clients


def print_summary(summary: dict) -> None:
    print(f"\nClients created by imports: {summary['imported_clients']}")
    for job_id, count in sorted(summary["by_job"].items(), key=lambda item: str(item[0])):
        print(f"   • job {job_id}: {count}")
    print(f"Manually entered clients later updated by an import: {summary['manual_clients_updated_by_import']}")
    print("   (these are kept)")


def confirm() -> bool:
    print("\nType 'yes' to delete: ", end="")
    return input().strip().lower() == "yes"


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Delete clients created by bulk imports",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--job", dest="job_id", help="Only clean up clients created by this import job")
    parser.add_argument("--apply", action="store_true", help="Actually delete (default is a dry run)")
    parser.add_argument("--clear-jobs", action="store_true", help="Also delete completed/failed import jobs")
    parser.add_argument("--yes", "-y", action="store_true", help="Auto-confirm without prompting")
    args = parser.parse_args()

    configure_logging(settings.log_level)

    db_url_display = settings.database_url.split("@")[-1] if "@" in settings.database_url else settings.database_url
    print(f"Database: {db_url_display}")

    print_summary(summarize_imported_clients(args.job_id))

    if args.apply and not args.yes and not confirm():
        print("\nCleanup cancelled.")
        return 0

    result = purge_imported_clients(
        import_job_id=args.job_id,
        clear_jobs=args.clear_jobs,
        dry_run=not args.apply,
    )
    verb = "Would delete" if result["dry_run"] else "Deleted"
    print(f"\n{verb} {result['clients_deleted']} client(s) and {result['jobs_deleted']} import job(s).")
    if result["dry_run"]:
        print("Re-run with --apply to delete.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
