"""
Module: stock_kernel.db.triggers
Responsibility: Installing, removing and verifying the PostgreSQL triggers
    that make stock_movements and order_items append-only (Layer 2 of 2).
    The ORM-level complement is db/immutability.py.
Architecture position: Kernel > DB.  MUST NOT import from models/, services/,
    selectors/, domain/, or outer layers.

Failure modes:
    - PostgreSQL RAISE EXCEPTION on UPDATE/DELETE of a protected row
      (surfaces as InternalError / DBAPIError through SQLAlchemy).
    - OperationalError on deadlock during installation (caller retries).
"""

from sqlalchemy import text
from sqlalchemy.engine import Engine

# table -> (function name, [trigger names])
PROTECTED_TABLES: dict[str, tuple[str, list[str]]] = {
    "stock_movements": (
        "fn_stock_movement_append_only",
        ["trg_stock_movement_no_update", "trg_stock_movement_no_delete"],
    ),
    "order_items": (
        "fn_order_item_append_only",
        ["trg_order_item_no_update", "trg_order_item_no_delete"],
    ),
}

ALL_TRIGGER_NAMES = [
    name for _, names in PROTECTED_TABLES.values() for name in names
]

_FUNCTION_SQL = """
CREATE OR REPLACE FUNCTION {function}() RETURNS trigger AS $$
BEGIN
    RAISE EXCEPTION USING
        MESSAGE = 'IMMUTABILITY_VIOLATION: ' || TG_OP || ' on {table} is not allowed (id=' || OLD.id || ')',
        ERRCODE = 'restrict_violation';
END;
$$ LANGUAGE plpgsql;
"""

_TRIGGER_SQL = """
DROP TRIGGER IF EXISTS {trigger} ON {table};
CREATE TRIGGER {trigger}
    BEFORE {operation} ON {table}
    FOR EACH ROW EXECUTE FUNCTION {function}();
"""


def _install_sql() -> str:
    parts = []
    for table, (function, (update_trigger, delete_trigger)) in PROTECTED_TABLES.items():
        parts.append(_FUNCTION_SQL.format(function=function, table=table))
        parts.append(
            _TRIGGER_SQL.format(
                trigger=update_trigger, table=table, operation="UPDATE", function=function
            )
        )
        parts.append(
            _TRIGGER_SQL.format(
                trigger=delete_trigger, table=table, operation="DELETE", function=function
            )
        )
    return "\n".join(parts)


def _drop_sql() -> str:
    parts = []
    for table, (function, triggers) in PROTECTED_TABLES.items():
        for trigger in triggers:
            parts.append(f"DROP TRIGGER IF EXISTS {trigger} ON {table};")
        parts.append(f"DROP FUNCTION IF EXISTS {function}();")
    return "\n".join(parts)


def install_immutability_triggers(engine: Engine) -> None:
    """
    Install the append-only triggers.

    Preconditions: tables exist; engine is connected to PostgreSQL.
    Postconditions: every trigger in ALL_TRIGGER_NAMES is installed
        (idempotent).
    """
    with engine.connect() as conn:
        conn.execute(text(_install_sql()))
        conn.commit()


def uninstall_immutability_triggers(engine: Engine) -> None:
    """Remove the append-only triggers and their functions."""
    with engine.connect() as conn:
        conn.execute(text(_drop_sql()))
        conn.commit()


def get_installed_triggers(engine: Engine) -> list[str]:
    trigger_list = ", ".join(f"'{name}'" for name in ALL_TRIGGER_NAMES)
    check_sql = f"""
    SELECT tgname FROM pg_trigger
    WHERE tgname IN ({trigger_list})
    ORDER BY tgname;
    """
    with engine.connect() as conn:
        return [row[0] for row in conn.execute(text(check_sql))]


def triggers_installed(engine: Engine) -> bool:
    """True iff every append-only trigger is present in pg_trigger."""
    return len(get_installed_triggers(engine)) == len(ALL_TRIGGER_NAMES)
