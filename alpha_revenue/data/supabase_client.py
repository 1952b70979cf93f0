#!/usr/bin/env python3
"""
Supabase Database Client
Connection used to persist user-added API credentials
"""

from supabase import create_client, Client

from config import config


class SupabaseClient:
    """Supabase database client wrapper"""

    def __init__(self, url: str = None, key: str = None):
        url = url or config.SUPABASE_URL
        # Prefer service role for backend writes (bypasses RLS where appropriate).
        key = key or config.SUPABASE_SERVICE_ROLE_KEY or config.SUPABASE_ANON_KEY
        if not url or not key:
            raise ValueError("Supabase credentials not configured. Please set SUPABASE_URL and either SUPABASE_SERVICE_ROLE_KEY or SUPABASE_ANON_KEY")
        self.client: Client = create_client(url, key)

    def get_client(self) -> Client:
        """Get Supabase client instance"""
        return self.client

    def test_connection(self, table: str = None) -> bool:
        """Select nothing from the credentials table to confirm URL, key and schema"""
        try:
            self.client.table(table or config.CREDENTIALS_TABLE).select('key').limit(1).execute()
            print("✅ Supabase connection successful")
            return True
        except Exception as e:
            print(f"❌ Supabase connection failed: {e}")
            return False


def create_supabase_client():
    """SupabaseClient when configured, else None"""
    return SupabaseClient() if config.supabase_enabled() else None
