# scripts/generate_metrics.py
import sys
from pathlib import Path

# Ensure project root is on the path when running this script directly
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import argparse
import asyncio
from datetime import date

from carshare_activity.config.logging import configure_logging
from carshare_activity.config.settings import get_settings
from carshare_activity.runtime import ActivityRuntime


async def generate(day):
    settings = get_settings()
    configure_logging(settings.log_level)
    runtime = ActivityRuntime.from_settings(settings)
    try:
        records = await runtime.metrics_generator.generate_daily_metrics(day)
    finally:
        await runtime.shutdown()

    for record in records:
        print(f"{record.metric_type}: {record.value:g} {record.unit or ''}".rstrip())
    print("Generated:", len(records))


parser = argparse.ArgumentParser(description="Aggregate one UTC day of activity into daily metrics.")
parser.add_argument(
    "--date",
    type=date.fromisoformat,
    default=None,
    help="day to aggregate (YYYY-MM-DD); defaults to yesterday",
)
args = parser.parse_args()

asyncio.run(generate(args.date))
