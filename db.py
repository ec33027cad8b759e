"""
Database module for the Sales Pipeline CRM.
Talks to the hosted PostgreSQL datastore through a small table-query layer.

IMPORTANT: The datastore owns the schema and its constraints.
This module never creates or migrates tables. It only selects, inserts
and updates rows in the allow-listed tables.

PRODUCTION: Requires DATABASE_URL environment variable.
"""

import os
import re
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any

import psycopg2
from psycopg2.extras import RealDictCursor
from psycopg2.pool import ThreadedConnectionPool
import time
import logging
import threading

from models.enums import (
    TABLES,
    OPPORTUNITIES_TABLE,
    CLIENTS_TABLE,
    TEAM_MEMBERS_TABLE,
    SALES_ACTIVITIES_TABLE,
    CLIENT_INTERACTIONS_TABLE,
)

# Configure logging for instrumentation (server-side only)
_logger = logging.getLogger(__name__)
_logger.setLevel(logging.INFO)
if not _logger.handlers:
    _handler = logging.StreamHandler()
    _handler.setFormatter(logging.Formatter('%(asctime)s [%(name)s] %(message)s'))
    _logger.addHandler(_handler)

# =============================================================================
# CONNECTION POOL (lazy-initialized singleton)
# =============================================================================
_pool: Optional[ThreadedConnectionPool] = None
_pool_lock = threading.Lock()

# Instrumentation counters (thread-safe)
_stats_lock = threading.Lock()
_pool_stats = {
    "borrows": 0,
    "returns": 0,
    "exhaustions": 0,
    "discards": 0,
    "queries": 0,
}

# =============================================================================
# TTL CACHE (for reference data only - never for pipeline records)
# =============================================================================
_cache: Dict[str, Any] = {}
_cache_expiry: Dict[str, float] = {}
_cache_lock = threading.Lock()


def clear_cache():
    """Clear all cached reference data."""
    with _cache_lock:
        _cache.clear()
        _cache_expiry.clear()
    _logger.info("Reference data cache cleared")


def cached(ttl_seconds: int = 30):
    """
    TTL cache decorator for read-only reference lookups.
    Keyed on function name and repr of arguments.
    """
    import functools

    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            key = "|".join([func.__name__, repr(args), repr(sorted(kwargs.items()))])
            now = time.time()

            with _cache_lock:
                if key in _cache and _cache_expiry.get(key, 0) > now:
                    return _cache[key]

            # Cache miss - execute function (outside lock)
            result = func(*args, **kwargs)

            with _cache_lock:
                _cache[key] = result
                _cache_expiry[key] = now + ttl_seconds

            return result
        return wrapper
    return decorator


def _get_pool() -> ThreadedConnectionPool:
    """
    Lazy-initialize and return the connection pool.
    Called on first DB access, not on import.
    """
    global _pool
    if _pool is not None:
        return _pool

    with _pool_lock:
        # Double-check inside lock
        if _pool is not None:
            return _pool

        url = os.environ.get("DATABASE_URL")
        if not url:
            raise RuntimeError("DATABASE_URL not set. Cannot proceed.")
        if url.startswith("postgres://"):
            url = url.replace("postgres://", "postgresql://", 1)

        _pool = ThreadedConnectionPool(
            minconn=2,
            maxconn=10,
            dsn=url,
            cursor_factory=RealDictCursor
        )
        _logger.info("Connection pool initialized (min=2, max=10)")
        return _pool


def get_connection():
    """
    Get a connection from the pool with 2s max wait on exhaustion.
    Returns a pooled connection. Caller MUST return via return_connection().
    """
    pool = _get_pool()

    start = time.time()
    max_wait = 2.0

    while True:
        try:
            conn = pool.getconn()
            with _stats_lock:
                _pool_stats["borrows"] += 1
            return conn
        except psycopg2.pool.PoolError:
            elapsed = time.time() - start
            if elapsed >= max_wait:
                with _stats_lock:
                    _pool_stats["exhaustions"] += 1
                _logger.warning(f"Pool exhaustion after {elapsed:.2f}s")
                raise RuntimeError("DB pool exhausted. Please retry.")
            time.sleep(0.1)


def return_connection(conn, healthy: bool = True):
    """
    Return a connection to the pool.
    If unhealthy (connection error occurred), discard it.
    """
    pool = _get_pool()
    try:
        if healthy:
            pool.putconn(conn)
            with _stats_lock:
                _pool_stats["returns"] += 1
        else:
            # Discard poisoned connection
            pool.putconn(conn, close=True)
            with _stats_lock:
                _pool_stats["discards"] += 1
            _logger.info("Discarded unhealthy connection")
    except Exception as e:
        _logger.warning(f"Error returning connection: {e}")


def get_pool_stats() -> Dict[str, int]:
    """Return current pool instrumentation stats."""
    with _stats_lock:
        return dict(_pool_stats)


def adapt_query(sql: str) -> str:
    """
    Convert '?' placeholders to psycopg2 '%s' placeholders,
    but ONLY when the '?' is outside of:
      - single-quoted strings: '...'
      - double-quoted identifiers: "..."
      - line comments: -- ...
      - block comments: /* ... */

    Every literal % is doubled first: psycopg2 interpolates the whole
    statement (strings and comments included) once params are passed.
    """
    if not sql:
        return sql

    sql = sql.replace("%", "%%")

    out = []
    i = 0
    n = len(sql)

    in_single = False
    in_double = False
    in_line_comment = False
    in_block_comment = False

    while i < n:
        ch = sql[i]

        if in_line_comment:
            out.append(ch)
            if ch == "\n":
                in_line_comment = False
            i += 1
            continue

        if in_block_comment:
            out.append(ch)
            if ch == "*" and i + 1 < n and sql[i + 1] == "/":
                out.append("/")
                i += 2
                in_block_comment = False
            else:
                i += 1
            continue

        # Start comments (only if not in quotes)
        if not in_single and not in_double:
            if ch == "-" and i + 1 < n and sql[i + 1] == "-":
                out.append("--")
                i += 2
                in_line_comment = True
                continue
            if ch == "/" and i + 1 < n and sql[i + 1] == "*":
                out.append("/*")
                i += 2
                in_block_comment = True
                continue

        if ch == "'" and not in_double:
            out.append(ch)
            if in_single:
                if i + 1 < n and sql[i + 1] == "'":
                    out.append("'")
                    i += 2
                    continue
                in_single = False
            else:
                in_single = True
            i += 1
            continue

        if ch == '"' and not in_single:
            out.append(ch)
            if in_double:
                if i + 1 < n and sql[i + 1] == '"':
                    out.append('"')
                    i += 2
                    continue
                in_double = False
            else:
                in_double = True
            i += 1
            continue

        if ch == "?" and not in_single and not in_double:
            out.append("%s")
            i += 1
            continue

        out.append(ch)
        i += 1

    return "".join(out)


def is_write(sql: str) -> bool:
    """Check if SQL is a write operation. Handles CTE (WITH) queries."""
    if not sql or not sql.strip():
        return False
    s = sql.lstrip()
    token = s.split(None, 1)[0].upper()

    if token == "WITH":
        upper = s.upper()
        return any(k in upper for k in (" INSERT ", " UPDATE ", " DELETE "))
    return token in {"INSERT", "UPDATE", "DELETE"}


def execute(sql: str, params=None, *, fetch="none"):
    """
    Central DB executor using connection pool.
    - fetch: "none" | "one" | "all" | "rowcount"
    - Commits only on writes
    - Discards connection on connection-level errors
    """
    query_start = time.time()
    conn = get_connection()
    healthy = True
    try:
        with conn.cursor() as cursor:
            cursor.execute(adapt_query(sql), params or ())
            if fetch == "one":
                result = cursor.fetchone()
            elif fetch == "all":
                result = cursor.fetchall()
            elif fetch == "rowcount":
                result = cursor.rowcount
            else:
                result = None
            if is_write(sql):
                conn.commit()

            elapsed_ms = (time.time() - query_start) * 1000
            with _stats_lock:
                _pool_stats["queries"] += 1

            # Log slow queries (>100ms)
            if elapsed_ms > 100:
                query_preview = sql.strip()[:80].replace('\n', ' ')
                _logger.warning(f"SLOW QUERY ({elapsed_ms:.0f}ms): {query_preview}...")

            return result
    except psycopg2.OperationalError as e:
        healthy = False
        _logger.error(f"Connection error: {e}")
        raise
    except psycopg2.InterfaceError as e:
        healthy = False
        _logger.error(f"Interface error: {e}")
        raise
    except psycopg2.Error:
        # Statement-level failure: clear the aborted transaction before reuse
        conn.rollback()
        raise
    finally:
        return_connection(conn, healthy=healthy)


# =============================================================================
# GENERIC TABLE OPERATIONS
# =============================================================================

_IDENTIFIER_RE = re.compile(r'^[a-z_][a-z0-9_]*$')


def _check_table(table: str) -> str:
    if table not in TABLES:
        raise ValueError(f"Unknown table: {table}")
    return table


def _check_columns(columns) -> List[str]:
    cols = list(columns)
    for col in cols:
        if not isinstance(col, str) or not _IDENTIFIER_RE.match(col):
            raise ValueError(f"Unsafe column name: {col!r}")
    return cols


def select_rows(
    table: str,
    columns: Optional[List[str]] = None,
    filters: Optional[Dict[str, Any]] = None,
    order_by: Optional[str] = None,
    descending: bool = False,
) -> List[Dict[str, Any]]:
    """
    SELECT from an allow-listed table.

    Filters are equality predicates joined with AND.
    """
    _check_table(table)
    select_list = ", ".join(_check_columns(columns)) if columns else "*"
    sql = f"SELECT {select_list} FROM {table}"

    params = []
    if filters:
        where = [f"{col} = ?" for col in _check_columns(filters.keys())]
        sql += " WHERE " + " AND ".join(where)
        params = list(filters.values())

    if order_by:
        _check_columns([order_by])
        sql += f" ORDER BY {order_by} {'DESC' if descending else 'ASC'}"

    rows = execute(sql, tuple(params), fetch="all")
    return [dict(r) for r in rows] if rows else []


def insert_row(table: str, values: Dict[str, Any], returning: str = "id") -> Any:
    """INSERT one row and return the value of the `returning` column."""
    _check_table(table)
    if not values:
        raise ValueError("insert_row requires at least one value")
    cols = _check_columns(values.keys())
    _check_columns([returning])

    placeholders = ", ".join("?" for _ in cols)
    row = execute(
        f"INSERT INTO {table} ({', '.join(cols)}) VALUES ({placeholders}) RETURNING {returning}",
        tuple(values.values()),
        fetch="one",
    )
    return row[returning] if row else None


def update_rows(table: str, values: Dict[str, Any], filters: Dict[str, Any]) -> int:
    """
    UPDATE rows matching all equality filters.

    Refuses an empty filter set: a whole-table update is never intended here.
    Returns: count of rows updated
    """
    _check_table(table)
    if not values:
        raise ValueError("update_rows requires at least one value")
    if not filters:
        raise ValueError("update_rows requires at least one filter")

    set_clauses = [f"{col} = ?" for col in _check_columns(values.keys())]
    where = [f"{col} = ?" for col in _check_columns(filters.keys())]
    params = list(values.values()) + list(filters.values())

    return execute(
        f"UPDATE {table} SET {', '.join(set_clauses)} WHERE {' AND '.join(where)}",
        tuple(params),
        fetch="rowcount",
    ) or 0


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# =============================================================================
# OPPORTUNITIES
# =============================================================================

def get_active_opportunities() -> List[Dict[str, Any]]:
    """
    Active opportunities with the assigned team member, newest first.

    team_member_name / team_member_email are NULL when nobody is assigned
    or the member row no longer exists.
    """
    rows = execute(f"""
        SELECT o.*,
               tm.full_name AS team_member_name,
               tm.email AS team_member_email
        FROM {OPPORTUNITIES_TABLE} o
        LEFT JOIN {TEAM_MEMBERS_TABLE} tm ON tm.id = o.assigned_to
        WHERE o.is_active = TRUE
        ORDER BY o.created_at DESC
    """, fetch="all")
    return [dict(r) for r in rows] if rows else []


def get_opportunity_stat_rows() -> List[Dict[str, Any]]:
    """Only the columns the pipeline aggregation needs."""
    return select_rows(
        OPPORTUNITIES_TABLE,
        columns=["stage", "estimated_value", "probability_percentage"],
        filters={"is_active": True},
    )


def update_opportunity_stage(opportunity_id: str, stage: str) -> int:
    """
    Set the stage of one opportunity.

    Raises:
        ValueError: If stage is not a canonical stage key
    """
    from services.sales_stage import SALES_STAGE_KEYS

    if stage not in SALES_STAGE_KEYS:
        raise ValueError(f"Invalid stage: {stage}")

    return update_rows(
        OPPORTUNITIES_TABLE,
        {"stage": stage, "updated_at": _now_iso()},
        {"id": opportunity_id},
    )


def deactivate_opportunity(opportunity_id: str) -> int:
    """Soft delete: the row stays, it just drops off the board."""
    return update_rows(
        OPPORTUNITIES_TABLE,
        {"is_active": False, "updated_at": _now_iso()},
        {"id": opportunity_id},
    )


def insert_sales_activity(
    opportunity_id: str,
    activity_type: str,
    title: str,
    description: str = None,
) -> Any:
    return insert_row(SALES_ACTIVITIES_TABLE, {
        "opportunity_id": opportunity_id,
        "activity_type": activity_type,
        "title": title,
        "description": description,
    })


# =============================================================================
# CLIENTS
# =============================================================================

def insert_client(values: Dict[str, Any]) -> Any:
    """Insert a client row. Returns the new client id."""
    return insert_row(CLIENTS_TABLE, values)


def insert_client_interaction(
    client_id: str,
    interaction_type: str,
    title: str,
    description: str = None,
    outcome: str = None,
    created_by: str = None,
) -> Any:
    return insert_row(CLIENT_INTERACTIONS_TABLE, {
        "client_id": client_id,
        "interaction_type": interaction_type,
        "title": title,
        "description": description,
        "outcome": outcome,
        "created_by": created_by,
        "interaction_date": _now_iso(),
    })


# =============================================================================
# TEAM MEMBERS (reference data)
# =============================================================================

@cached(30)
def get_active_team_members() -> List[Dict[str, Any]]:
    """Active team members for assignee dropdowns, alphabetical."""
    return select_rows(
        TEAM_MEMBERS_TABLE,
        columns=["id", "full_name", "email"],
        filters={"is_active": True},
        order_by="full_name",
    )
