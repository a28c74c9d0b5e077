from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.engine import URL, make_url

TEST_DB_SUFFIX = "_test"
LOCAL_TEST_HOSTS = frozenset(
    {
        "localhost",
        "127.0.0.1",
        "::1",
        "postgres",
        "credit_ledger_postgres",
    }
)


@dataclass(frozen=True, slots=True)
class IntegrationDbSafetyResult:
    is_safe: bool
    reason: str
    database_name: str
    host: str


def _find_violation(url: URL, *, database_name: str, host: str) -> str | None:
    if url.get_backend_name() != "postgresql":
        return "only PostgreSQL databases can host the ledger integration suite"
    if not database_name.endswith(TEST_DB_SUFFIX):
        return f"database name must end with '{TEST_DB_SUFFIX}'"
    if host not in LOCAL_TEST_HOSTS:
        return f"host '{host or '<socket>'}' is not a local test host"
    return None


def assess_integration_db_safety(database_url: str) -> IntegrationDbSafetyResult:
    url = make_url(database_url)
    database_name = (url.database or "").strip()
    host = (url.host or "").strip().lower()
    violation = _find_violation(url, database_name=database_name, host=host)
    return IntegrationDbSafetyResult(
        is_safe=violation is None,
        reason=violation or "ok",
        database_name=database_name,
        host=host,
    )


def assert_safe_integration_db(database_url: str) -> None:
    """Refuse to truncate ledger tables anywhere but a local ``*_test`` database."""
    result = assess_integration_db_safety(database_url)
    if result.is_safe:
        return

    raise RuntimeError(
        "Refusing to run integration tests with destructive TRUNCATE: "
        f"{result.reason} (database='{result.database_name}', host='{result.host}'). "
        "Point DATABASE_URL at a local database such as 'credit_ledger_test'."
    )
