"""
Print lead counts by status for an agency.

Usage:
    python scripts/lead_status_report.py <agency_id>
"""

import argparse
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from repositories.client import get_supabase
from repositories.lead_repository import SupabaseLeadRepository
from services.aggregation_service import AggregationService


def print_report(agency_id: str) -> None:
    stats = AggregationService(SupabaseLeadRepository(get_supabase())).stats_for_agency(agency_id)

    print("=" * 50)
    print(f"LEAD STATUS: agency {agency_id}")
    print("=" * 50)
    print(f"Total leads:               {stats.total}")
    print(f"New:                       {stats.new}")
    print(f"Assigned:                  {stats.assigned}")
    print(f"In progress:               {stats.in_progress}")
    print(f"Completed:                 {stats.completed}")
    print(f"Closed:                    {stats.closed}")
    print("-" * 50)
    print(f"Active (not yet closed):   {stats.active}")
    rate = f"{(stats.completed / stats.total * 100):.1f}%" if stats.total > 0 else "N/A"
    print(f"Conversion rate:           {rate}")
    print("=" * 50)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Lead counts by status for an agency")
    parser.add_argument("agency_id")
    args = parser.parse_args()
    print_report(args.agency_id)
