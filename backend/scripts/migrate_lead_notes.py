"""
CRM - Migration: legacy lead notes text -> structured history entries.

Legacy leads kept their call log inside `notes` as
"[timestamp] outcome: content" blocks separated by blank lines.
Leads that already have a non-empty `history` are left alone.

Run: cd backend && python3 scripts/migrate_lead_notes.py [--dry-run]
"""

import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from motor.motor_asyncio import AsyncIOMotorClient
from config import MONGO_URL, DB_NAME
from services.lead_calls import parse_legacy_notes


async def migrate(db, dry_run: bool = False) -> dict:
    total = await db.leads.count_documents({})

    migrated = 0
    entries_created = 0
    already_done = 0
    empty = 0

    cursor = db.leads.find({}, {"_id": 0, "id": 1, "notes": 1, "history": 1, "created_at": 1})

    async for lead in cursor:
        if lead.get("history"):
            already_done += 1
            continue
        if not lead.get("notes"):
            empty += 1
            continue

        entries = parse_legacy_notes(lead["notes"], fallback_timestamp=lead.get("created_at"))
        if not dry_run:
            await db.leads.update_one(
                {"id": lead["id"], "$or": [{"history": {"$exists": False}}, {"history": []}]},
                {"$set": {"history": entries}}
            )
        migrated += 1
        entries_created += len(entries)

    return {
        "total": total,
        "migrated": migrated,
        "entries_created": entries_created,
        "already_done": already_done,
        "empty": empty,
    }


async def main():
    dry_run = "--dry-run" in sys.argv
    client = AsyncIOMotorClient(MONGO_URL)
    report = await migrate(client[DB_NAME], dry_run=dry_run)
    client.close()

    print("\n════════════════════════════════════")
    print("  MIGRATION REPORT" + (" (DRY RUN)" if dry_run else ""))
    print("════════════════════════════════════")
    print(f"  Total leads:       {report['total']}")
    print(f"  Leads migrated:    {report['migrated']}")
    print(f"  History entries:   {report['entries_created']}")
    print(f"  Already migrated:  {report['already_done']}")
    print(f"  No notes:          {report['empty']}")
    print("════════════════════════════════════")


if __name__ == "__main__":
    asyncio.run(main())
