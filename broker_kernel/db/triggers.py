"""
Module: broker_kernel.db.triggers
Responsibility: Installing and verifying the PostgreSQL triggers that make
    lifecycle audit entries append-only at the database level.  The
    database-level complement to the ORM listeners in db/immutability.py.
Architecture position: Kernel > DB.  May import from db/ only.

Invariants enforced:
    - lifecycle_audit_entries rows: no UPDATE, no DELETE, ever.

Failure modes:
    - PostgreSQL RAISE EXCEPTION on violation (surfaces through SQLAlchemy
      as an InternalError/ProgrammingError from the driver).

Audit relevance:
    Raw SQL and bulk operations bypass ORM listeners.  The triggers do not.
"""

from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine

AUDIT_TABLE = "lifecycle_audit_entries"

ALL_TRIGGER_NAMES = [
    "trg_lifecycle_audit_immutability_update",
    "trg_lifecycle_audit_immutability_delete",
]

_INSTALL_SQL = f"""
CREATE OR REPLACE FUNCTION prevent_lifecycle_audit_mutation()
RETURNS TRIGGER AS $$
BEGIN
    RAISE EXCEPTION 'IMMUTABILITY_VIOLATION: lifecycle audit entries are append-only (% on %)',
        TG_OP, OLD.id;
END;
$$ LANGUAGE plpgsql;

DROP TRIGGER IF EXISTS trg_lifecycle_audit_immutability_update ON {AUDIT_TABLE};
CREATE TRIGGER trg_lifecycle_audit_immutability_update
    BEFORE UPDATE ON {AUDIT_TABLE}
    FOR EACH ROW EXECUTE FUNCTION prevent_lifecycle_audit_mutation();

DROP TRIGGER IF EXISTS trg_lifecycle_audit_immutability_delete ON {AUDIT_TABLE};
CREATE TRIGGER trg_lifecycle_audit_immutability_delete
    BEFORE DELETE ON {AUDIT_TABLE}
    FOR EACH ROW EXECUTE FUNCTION prevent_lifecycle_audit_mutation();
"""

_DROP_SQL = f"""
DROP TRIGGER IF EXISTS trg_lifecycle_audit_immutability_update ON {AUDIT_TABLE};
DROP TRIGGER IF EXISTS trg_lifecycle_audit_immutability_delete ON {AUDIT_TABLE};
DROP FUNCTION IF EXISTS prevent_lifecycle_audit_mutation();
"""


def install_immutability_triggers(engine: Engine) -> None:
    """Install the audit immutability triggers (idempotent).

    Preconditions: Tables exist and ``engine`` is connected to PostgreSQL.
    """
    with engine.connect() as conn:
        conn.execute(text(_INSTALL_SQL))
        conn.commit()


def uninstall_immutability_triggers(engine: Engine) -> None:
    """Remove the audit immutability triggers.  Tests and migrations only.

    No-op when the audit table does not exist.
    """
    if not inspect(engine).has_table(AUDIT_TABLE):
        return
    with engine.connect() as conn:
        conn.execute(text(_DROP_SQL))
        conn.commit()


def get_installed_triggers(engine: Engine) -> list[str]:
    """Installed audit trigger names, sorted."""
    with engine.connect() as conn:
        result = conn.execute(
            text(
                "SELECT tgname FROM pg_trigger WHERE tgname = ANY(:names) ORDER BY tgname"
            ),
            {"names": ALL_TRIGGER_NAMES},
        )
        return [row[0] for row in result]


def triggers_installed(engine: Engine) -> bool:
    return len(get_installed_triggers(engine)) == len(ALL_TRIGGER_NAMES)
