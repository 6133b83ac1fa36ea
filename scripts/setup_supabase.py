#!/usr/bin/env python3
"""
Supabase Setup Helper for the content engine.

Verifies the Supabase connection and that the ai_jobs and assets tables
exist, and prints migration instructions when they don't.

Usage:
    python scripts/setup_supabase.py

Requirements:
    - Set SUPABASE_URL and SUPABASE_SERVICE_KEY environment variables
    - Or create a .env file with these values (read by AppConfig)
"""

import sys

from supabase import Client, create_client

from content_engine.config import config


def get_client() -> Client | None:
    if not config.supabase_configured:
        print("\nMissing Supabase credentials!")
        print("\nSet these environment variables:")
        print("  SUPABASE_URL=https://your-project.supabase.co")
        print("  SUPABASE_SERVICE_KEY=eyJhbGci...")
        return None

    print(f"\nConnecting to: {config.SUPABASE_URL}")
    return create_client(config.SUPABASE_URL, config.SUPABASE_SERVICE_KEY)


def check_tables(client: Client) -> list[str]:
    """Check which required tables exist. Returns the missing ones."""
    required_tables = {
        config.JOBS_TABLE: "job_id",
        config.ASSETS_TABLE: "id",
    }

    print("\nChecking required tables:")

    missing = []
    for table, column in required_tables.items():
        try:
            client.table(table).select(column).limit(1).execute()
            print(f"   OK       {table}")
        except Exception as e:
            if "does not exist" in str(e) or "Could not find" in str(e):
                print(f"   MISSING  {table}")
                missing.append(table)
            else:
                print(f"   ERROR    {table} ({e})")
                missing.append(table)

    return missing


def print_migration_instructions():
    print("\n" + "=" * 60)
    print("MIGRATION INSTRUCTIONS")
    print("=" * 60)
    print("""
1. Open your Supabase Dashboard > SQL Editor

2. Run: supabase/migrations/001_ai_jobs.sql

3. Run this script again to verify.
""")


def main() -> int:
    print("=" * 60)
    print("Content Engine - Supabase Setup Helper")
    print("=" * 60)

    client = get_client()
    if client is None:
        return 1

    missing = check_tables(client)
    if missing:
        print(f"\nMissing {len(missing)} table(s)")
        print_migration_instructions()
        return 1

    print("\nAll tables exist. Supabase is ready for the job pipeline.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
