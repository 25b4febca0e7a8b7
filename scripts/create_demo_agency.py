"""
Create a demo agency with one admin, one agent and one spotter.

The profile rows reuse fixed ids so the script can be re-run safely. Matching
Supabase auth users must exist with the same ids for the demo logins to work.
"""

import sys
from pathlib import Path

# Add parent directory to path so we can import from repositories
sys.path.insert(0, str(Path(__file__).parent.parent))

from datetime import datetime, timezone

from repositories.client import get_supabase


DEMO_AGENCY_ID = "c0a8012e-7f3b-4d6a-8a1e-3b9f5d2e6c44"

DEMO_USERS = [
    {
        "id": "7d1f6c2a-3b4e-4f50-8a61-9c7d2e3f4a01",
        "email": "admin@demo-realty.example",
        "username": "demo_admin",
        "first_name": "Ada",
        "last_name": "Admin",
        "role": "agency_admin",
        "agency_id": DEMO_AGENCY_ID,
    },
    {
        "id": "7d1f6c2a-3b4e-4f50-8a61-9c7d2e3f4a02",
        "email": "agent@demo-realty.example",
        "username": "demo_agent",
        "first_name": "Alex",
        "last_name": "Agent",
        "role": "agent",
        "agency_id": DEMO_AGENCY_ID,
    },
    {
        "id": "7d1f6c2a-3b4e-4f50-8a61-9c7d2e3f4a03",
        "email": "spotter@example.com",
        "username": "demo_spotter",
        "first_name": "Sam",
        "last_name": "Spotter",
        "role": "spotter",
        "agency_id": None,
    },
]


def create_demo_agency():
    """Create the demo agency and its users if they do not exist yet."""

    supabase = get_supabase()
    now = datetime.now(timezone.utc).isoformat()

    existing = supabase.table("agencies").select("id").eq("id", DEMO_AGENCY_ID).execute()
    if existing.data:
        print(f"Demo agency already exists: {DEMO_AGENCY_ID}")
    else:
        result = supabase.table("agencies").insert({
            "id": DEMO_AGENCY_ID,
            "name": "Demo Realty",
            "email": "office@demo-realty.example",
            "phone": "02 9000 0000",
            "address": "1 Demo Street, Newtown",
        }).execute()
        if not result.data:
            print(f"[ERROR] Failed to create demo agency")
            print(f"  Error: {result}")
            return
        print(f"[SUCCESS] Demo agency created: {DEMO_AGENCY_ID}")

    for user in DEMO_USERS:
        existing = supabase.table("users").select("id").eq("id", user["id"]).execute()
        if existing.data:
            print(f"  {user['role']:<13} already exists: {user['email']}")
            continue

        result = supabase.table("users").insert({**user, "is_active": True, "created_at": now}).execute()
        if result.data:
            print(f"  {user['role']:<13} created: {user['email']} ({user['id']})")
        else:
            print(f"[ERROR] Failed to create {user['email']}")
            print(f"  Error: {result}")


if __name__ == "__main__":
    create_demo_agency()
