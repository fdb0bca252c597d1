"""
CRM - Seed Test Users (dev/staging only)
Creates the bootstrap admin and test members with predictable credentials.
Admins are otherwise only created through promotion, so a fresh database
needs this to get its first admin.
Run: python scripts/seed_test_users.py
Reset: python scripts/seed_test_users.py --reset
"""

import asyncio
import sys
import uuid
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from motor.motor_asyncio import AsyncIOMotorClient
from config import MONGO_URL, DB_NAME, hash_password, now_iso

# Same password for all test accounts
TEST_PASSWORD = "CrmTest2026!"

TEST_USERS = [
    {"email": "admin@test.local",    "full_name": "Admin Test",  "role": "admin"},
    {"email": "member1@test.local",  "full_name": "Member One",  "role": "member"},
    {"email": "member2@test.local",  "full_name": "Member Two",  "role": "member"},
]


async def reset(db):
    """Delete all test.local profiles and their sessions"""
    ids = [p["id"] async for p in db.profiles.find({"email": {"$regex": "@test\\.local$"}}, {"_id": 0, "id": 1})]
    result = await db.profiles.delete_many({"id": {"$in": ids}})
    await db.sessions.delete_many({"user_id": {"$in": ids}})
    print(f"Deleted {result.deleted_count} test users")


async def seed(db):
    for u in TEST_USERS:
        doc = {
            "email": u["email"],
            "full_name": u["full_name"],
            "role": u["role"],
            "status": "active",
            "password_hash": hash_password(TEST_PASSWORD),
        }
        existing = await db.profiles.find_one({"email": u["email"]})
        if existing:
            await db.profiles.update_one({"email": u["email"]}, {"$set": doc})
            print(f"  Updated: {u['email']} ({u['role']})")
        else:
            doc["id"] = str(uuid.uuid4())
            doc["created_at"] = now_iso()
            await db.profiles.insert_one(doc)
            print(f"  Created: {u['email']} ({u['role']})")


async def main():
    client = AsyncIOMotorClient(MONGO_URL)
    db = client[DB_NAME]

    await reset(db)
    if "--reset" in sys.argv:
        print("Reset complete. Run without --reset to re-seed.")
    else:
        await seed(db)
        print(f"\n{len(TEST_USERS)} test users seeded. Password for all: {TEST_PASSWORD}")

    client.close()


if __name__ == "__main__":
    asyncio.run(main())
