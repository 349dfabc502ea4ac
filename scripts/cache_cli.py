#!/usr/bin/env python3
"""CrimeSync cache CLI: inspect and maintain the local cache.

Usage:
  python scripts/cache_cli.py stats                       # Row counts per family
  python scripts/cache_cli.py evict [--dry-run]           # Run an eviction sweep
  python scripts/cache_cli.py nearby LAT LON [RADIUS_KM]  # Nearby reports (fetch, or cache if offline)
"""
import asyncio
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


async def cmd_stats(args):
    from crimesync import CrimeSync

    async with CrimeSync.from_settings() as sync:
        print("=" * 40)
        print("  CrimeSync cache")
        print("=" * 40)
        for store in sync.cache.families:
            print(f"  {store.family.value:<10} {await store.count():>8,}")
        print("=" * 40)


async def cmd_evict(args):
    from crimesync import CrimeSync

    dry_run = "--dry-run" in args
    async with CrimeSync.from_settings() as sync:
        result = await sync.reconciler.run_sweep(dry_run=dry_run)

    label = "Would evict" if dry_run else "Evicted"
    for family, count in result.evicted.items():
        print(f"  {label} {count:>6,} {family}")
    print(f"  Total: {result.total:,} in {result.duration_ms}ms")
    for err in result.errors:
        print(f"  ❌ {err}")
    if result.errors:
        sys.exit(1)


async def cmd_nearby(args):
    from crimesync import CrimeSync, Staleness

    if len(args) < 2:
        print(__doc__)
        sys.exit(1)
    lat, lon = float(args[0]), float(args[1])
    radius = float(args[2]) if len(args) > 2 else None

    async with CrimeSync.from_settings() as sync:
        result = await sync.get_reports_near(lat, lon, radius)

    if result.staleness is Staleness.STALE:
        print(f"  ⚠️  {result.error}")
    for report in result.data:
        print(f"  {report.distance_km:>7} km  {report.type.value:<11} {report.description[:50]}")
    print(f"  {len(result.data)} report(s)")


COMMANDS = {
    "stats": cmd_stats,
    "evict": cmd_evict,
    "nearby": cmd_nearby,
}


def main():
    if len(sys.argv) < 2 or sys.argv[1] not in COMMANDS:
        print(__doc__)
        sys.exit(1)

    from crimesync.logging_config import setup_logging
    setup_logging()
    asyncio.run(COMMANDS[sys.argv[1]](sys.argv[2:]))


if __name__ == "__main__":
    main()
