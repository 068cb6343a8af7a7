"""
Supabase client for the listing, history, notification and favorites tables.
Provides a singleton instance shared by every Supabase-backed store.
"""
import logging
import socket
import time
from urllib.parse import urlparse

from supabase import Client, create_client

from storecompare.config import settings

logger = logging.getLogger(__name__)


class SupabaseClientManager:
    """
    Manager for Supabase client with singleton pattern.
    """
    _instance = None

    def __init__(self):
        self.client = None
        self.enabled = False

        if not settings.SUPABASE_URL or not settings.SUPABASE_KEY:
            logger.warning("Supabase URL or key not provided, Supabase stores are disabled")
            return

        # Check DNS resolution first to provide better error messages
        hostname = urlparse(settings.SUPABASE_URL).netloc
        try:
            socket.gethostbyname(hostname)
        except socket.gaierror as dns_error:
            logger.error(f"DNS resolution failed for Supabase URL ({hostname}): {dns_error}")
            return

        max_retries = 2
        last_error = None
        for attempt in range(1, max_retries + 1):
            try:
                self.client = create_client(settings.SUPABASE_URL, settings.SUPABASE_KEY)
                self.enabled = True
                logger.info("Successfully initialized Supabase client")
                return
            except Exception as retry_error:
                last_error = retry_error
                if attempt < max_retries:
                    logger.warning(f"Supabase client creation failed (attempt {attempt}), retrying...")
                    time.sleep(1)

        logger.error(f"Failed to initialize Supabase client: {last_error}")

    @classmethod
    def get_instance(cls) -> "SupabaseClientManager":
        """Get the singleton instance of SupabaseClientManager"""
        if cls._instance is None:
            cls._instance = SupabaseClientManager()
        return cls._instance

    def get_client(self) -> Client:
        if not self.enabled or self.client is None:
            raise ValueError("Supabase client is not initialized or connection failed")
        return self.client


def get_supabase_client() -> Client:
    """
    Returns the shared Supabase client.

    Raises:
        ValueError: If the Supabase client is not available or not initialized
    """
    try:
        return SupabaseClientManager.get_instance().get_client()
    except ValueError as e:
        logger.error(f"Supabase client unavailable: {e}")
        raise
