#!/usr/bin/env python3
"""
Probe every configured source and report sync lock and freshness state.
"""

import asyncio
from datetime import datetime
from pathlib import Path
import sys

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from redis.exceptions import RedisError

from regiq.db.repository import AlertRepository
from regiq.db.session import AsyncSessionLocal
from regiq.ingest.registry import SourceRegistry
from regiq.sync.diagnostics import probe_sources
from regiq.worker.sync_lock import HEARTBEAT_KEY, LOCK_KEY, SyncLockManager


async def diagnose() -> None:
    print("Source Diagnosis")
    print("================")

    probes = await probe_sources(SourceRegistry.all())
    for probe in probes:
        status = "OK  " if probe.success else "FAIL"
        print(f"[{status}] {probe.source:<22} {probe.elapsed_ms:>6}ms  records={probe.records_seen}")
        print(f"       {probe.url}")
        if probe.error:
            print(f"       error: {probe.error}")
        for title in probe.sample_titles:
            print(f"       - {title[:90]}")

    print("")
    print("Sync Lock")
    print("---------")
    print(f"LOCK_KEY: {LOCK_KEY}")
    print(f"HEARTBEAT_KEY: {HEARTBEAT_KEY}")

    lock_manager = SyncLockManager()
    lock_info = None
    try:
        lock_info = await lock_manager.get_lock_info()
        if not lock_info:
            print("Lock: none")
        else:
            print("Lock: present")
            print(f"  run_id: {lock_info.get('run_id')}")
            print(f"  trigger: {lock_info.get('trigger')}")
            print(f"  started_at: {lock_info.get('started_at')}")
            print(f"  ttl_seconds: {lock_info.get('ttl_seconds')}")
    except (RedisError, OSError) as e:
        print(f"Redis unavailable: {e}")
    finally:
        await lock_manager.close()

    print("")
    print("Data Freshness")
    print("--------------")
    async with AsyncSessionLocal() as db:
        rows = await AlertRepository(db).freshness()

    if not rows:
        print("No sync has been recorded yet")
    for row in rows:
        age = "n/a"
        if row.last_successful_fetch:
            age = f"{(datetime.utcnow() - row.last_successful_fetch).total_seconds() / 3600:.1f}h"
        print(
            f"  - {row.source_name:<22} status={row.fetch_status} "
            f"last_success_age={age} records={row.records_fetched}"
        )

    print("")
    print("Recommendations")
    print("----------------")
    failing = [p for p in probes if not p.success]
    for probe in failing:
        print(f"- {probe.source} is unreachable or malformed; check {probe.url}")
    empty = [p for p in probes if p.success and p.records_seen == 0]
    for probe in empty:
        print(f"- {probe.source} returned no records; selectors or query may be stale")
    if lock_info and not lock_info.get("ttl_seconds"):
        print("- Lock has no TTL. Consider force-unlock.")
    if not failing and not empty:
        print("- No issues detected.")


if __name__ == "__main__":
    asyncio.run(diagnose())
