# services/data_store.py
"""
Read-only queries against the hosted Supabase project
"""

import logging
from typing import Any, Dict, List, Optional

from supabase import Client, create_client

from core.exceptions import DataStoreError
from core.models import Program

logger = logging.getLogger(__name__)

MEMBER_COLUMNS = "uid, display_name, email, college, role, avatar"


class SupabaseDirectory:
    """
    Query wrapper over a Supabase client

    Every call goes to the data store; nothing is cached.
    """

    def __init__(self, client: Client):
        self.client = client

    def _execute(self, description: str, query) -> List[Dict[str, Any]]:
        try:
            response = query.execute()
        except Exception as e:
            logger.error(f"Error fetching {description}: {e}")
            raise DataStoreError(f"Failed to fetch {description}: {e}") from e
        return response.data or []

    def list_students(self) -> List[Dict[str, Any]]:
        query = (self.client.table("users")
                 .select(MEMBER_COLUMNS)
                 .eq("role", "student")
                 .order("display_name"))
        return self._execute("students", query)

    def list_users(self) -> List[Dict[str, Any]]:
        query = (self.client.table("users")
                 .select(MEMBER_COLUMNS)
                 .order("display_name"))
        return self._execute("users", query)

    def student_email_rows(self) -> List[Dict[str, Any]]:
        query = self.client.table("users").select("email").eq("role", "student")
        return self._execute("student emails", query)

    def student_emails(self) -> List[str]:
        return [row["email"] for row in self.student_email_rows() if row.get("email")]

    def get_blog(self, blog_id: Any) -> Optional[Dict[str, Any]]:
        query = self.client.table("blogs").select("*").eq("id", blog_id).limit(1)
        rows = self._execute(f"blog {blog_id}", query)
        return rows[0] if rows else None

    def list_active_programs(self) -> List[Program]:
        query = (self.client.table("programs")
                 .select("*")
                 .eq("is_active", True)
                 .order("created_at", desc=True))
        return [Program.from_row(row) for row in self._execute("programs", query)]


def build_directory(config) -> SupabaseDirectory:
    return SupabaseDirectory(create_client(config.SUPABASE_URL, config.SUPABASE_KEY))
