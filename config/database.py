"""
Supabase connection for the supabase data backend.

The memory backend never touches this module's client.
"""

from supabase import create_client, Client
from functools import lru_cache
import structlog

from config.settings import settings

logger = structlog.get_logger(__name__)

# Tables the repository reads and writes
REQUIRED_TABLES = (
    "products",
    "recipes",
    "recipe_materials",
    "material_definitions",
    "warehouses",
    "material_lots",
    "material_movements",
    "finished_goods_inventory",
    "orders",
    "order_lines",
    "order_timeline",
    "production_tasks",
    "replenishment_requests",
)


class SupabaseUnavailableError(Exception):
    """Supabase is not configured or could not be reached."""
    pass


@lru_cache()
def get_supabase_client() -> Client:
    """
    Get cached Supabase client instance.

    The service role key is preferred when set: the fulfillment functions
    in migrations/ write across tables that row-level policies may hide
    from the anon key. Call reset_connection() to reconnect.

    Raises:
        SupabaseUnavailableError: If credentials are missing or the probe fails
    """
    if not settings.supabase_configured:
        raise SupabaseUnavailableError("SUPABASE_URL and SUPABASE_KEY must be set")

    key = settings.supabase_service_key or settings.supabase_key
    try:
        logger.info(
            "connecting_to_supabase",
            url=settings.supabase_url[:30] + "...",
            service_role=bool(settings.supabase_service_key)
        )
        client = create_client(settings.supabase_url, key)
        client.table("warehouses").select("id").limit(1).execute()
    except Exception as e:
        logger.error(
            "supabase_connection_failed",
            error=str(e),
            error_type=type(e).__name__
        )
        raise SupabaseUnavailableError(f"Failed to connect to Supabase: {e}") from e

    logger.info("supabase_connected")
    return client


def _missing_tables(client: Client) -> list[str]:
    missing = []
    for table in REQUIRED_TABLES:
        try:
            client.table(table).select("*").limit(1).execute()
        except Exception as e:
            logger.warning("table_probe_failed", table=table, error=str(e))
            missing.append(table)
    return missing


def check_connection() -> dict:
    """
    Health of the configured storage backend.

    For supabase, also reports tables the repository needs but cannot read.
    """
    if settings.data_backend == "memory":
        return {"status": "healthy", "backend": "memory"}

    try:
        client = get_supabase_client()
        warehouses = client.table("warehouses").select("id", count="exact").execute()
        orders = client.table("orders").select("id", count="exact").execute()
        missing = _missing_tables(client)
    except Exception as e:
        return {
            "status": "unhealthy",
            "backend": "supabase",
            "error": str(e)
        }

    return {
        "status": "healthy" if not missing else "degraded",
        "backend": "supabase",
        "warehouses_count": warehouses.count,
        "orders_count": orders.count,
        "missing_tables": missing,
    }


def reset_connection():
    """Drop the cached client; the next call reconnects."""
    get_supabase_client.cache_clear()
    logger.info("database_connection_reset")
