"""Supabase client construction."""

from typing import Optional

from supabase import Client, create_client

from taskmarket.config.logger import app_logger
from taskmarket.config.settings import settings


def create_admin_client(url: Optional[str] = None, service_role_key: Optional[str] = None) -> Client:
    """Create a Supabase client with the service role key.

    Raises:
        ValueError: If the Supabase URL or service role key is not configured
    """
    url = url or settings.SUPABASE_URL
    service_role_key = service_role_key or settings.SUPABASE_SERVICE_ROLE_KEY

    if not url or not service_role_key:
        raise ValueError(
            "Supabase URL and SERVICE_ROLE_KEY must be configured for admin operations. "
            "Set SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY in .env"
        )

    try:
        client = create_client(url, service_role_key)
        app_logger.info("Supabase admin client initialized successfully")
        return client
    except Exception as e:
        app_logger.error(f"Failed to initialize Supabase admin client: {e}")
        raise
