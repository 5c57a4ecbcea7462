# scripts/run_cleanup.py
import sys
from pathlib import Path

# Ensure project root is on the path when running this script directly
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import argparse
import asyncio
import json

from carshare_activity.config.logging import configure_logging
from carshare_activity.config.settings import get_settings
from carshare_activity.runtime import ActivityRuntime


async def run_cleanup(dry_run: bool):
    settings = get_settings()
    configure_logging(settings.log_level)
    runtime = ActivityRuntime.from_settings(settings)
    try:
        stats = await runtime.retention.execute_cleanup(dry_run=dry_run)
    finally:
        await runtime.shutdown()

    print(json.dumps(
        {
            "dryRun": dry_run,
            "processed": stats.processed,
            "deleted": stats.deleted,
            "archived": stats.archived,
            "spaceSavedMB": round(stats.space_saved_mb, 3),
            "executionTimeMs": stats.execution_time_ms,
            "errors": stats.errors,
        },
        indent=2,
    ))
    return 1 if stats.errors else 0


parser = argparse.ArgumentParser(description="Apply retention policies to stored activity data.")
parser.add_argument("--dry-run", action="store_true", help="count matching records without deleting")
args = parser.parse_args()

sys.exit(asyncio.run(run_cleanup(args.dry_run)))
