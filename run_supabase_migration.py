#!/usr/bin/env python3
"""Check the AI cost-layer tables exist in Supabase; print the DDL if not."""
import sys
from pathlib import Path

sys.path.insert(0, '.')

from app.db.supabase_client import get_supabase

MIGRATION = Path("migrations/0001_ai_cost_layer.sql")
TABLES = {
    "ai_response_cache": "query_hash",
    "ai_usage_log": "id",
    "ai_metric_snapshot": "snapshot_date",
}


def run_migration():
    supabase = get_supabase()
    missing = []

    for table, column in TABLES.items():
        print(f"🔍 Checking {table}...")
        try:
            supabase.table(table).select(column).limit(1).execute()
            print(f"✅ {table} exists")
        except Exception as e:
            print(f"❌ {table} unavailable: {e}")
            missing.append(table)

    if missing:
        print(f"\n💡 Missing: {', '.join(missing)}. Run this SQL in your Supabase SQL editor:\n")
        print("=" * 60)
        print(MIGRATION.read_text())
        print("=" * 60)
        sys.exit(1)

    print("\n✅ AI cost-layer schema is in place")


if __name__ == "__main__":
    run_migration()
