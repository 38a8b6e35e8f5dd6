from pathlib import Path

import pytest
import pytest_asyncio

from sqlcraft import InMemoryCache, Manager, ManagerConfig

# Statement files for the "app" connection, keyed by their path below the connection directory.
STATEMENTS = {
    "create.table.items.sql": (
        "CREATE TABLE IF NOT EXISTS items (\n"
        "  id INTEGER PRIMARY KEY,\n"
        "  name TEXT NOT NULL,\n"
        "  tag TEXT,\n"
        "  created TEXT\n"
        ")"
    ),
    "create.item.sql": "INSERT INTO items (id, name, tag, created) VALUES (:id, :name, :tag, :created)",
    "read.items.sql": (
        "SELECT id, name, tag FROM items\n"
        "WHERE id IN (:ids)\n"
        "[[? tagged]]\n"
        "AND tag = :tag\n"
        "[[?]]\n"
        "ORDER BY id"
    ),
    "read.version.sql": (
        "SELECT\n"
        "[[! sqlite]]\n"
        "sqlite_version() AS version\n"
        "[[!]]\n"
        "[[! postgres]]\n"
        "version() AS version\n"
        "[[!]]\n"
    ),
    "update.item.sql": "UPDATE items SET name = :name WHERE id = :id",
    "reports/read.count.sql": "SELECT COUNT(*) AS total FROM ${table}",
    "delete.items.sql": "DELETE FROM items",
}


def _config_dict(base: Path) -> dict:
    return {
        "main_path": str(base / "db"),
        "private_path": str(base / "private"),
        "univ": {"db": {"app-db": {}}},
        "db": {
            "dialects": {"sqlite": "sqlcraft.execution.sqlite:SqliteDialect"},
            "connections": [
                {
                    "id": "app-db",
                    "name": "app",
                    "version": 3,
                    "binds": {"tag": "default"},
                    "substitutes": {"${table}": "items"},
                    "sql": {"dialect": "sqlite", "database": "app.sqlite", "log": ["integration"]},
                }
            ],
        },
    }


@pytest.fixture
def statement_root(tmp_path: Path) -> Path:
    base = tmp_path / "db" / "app"
    for name, text in STATEMENTS.items():
        path = base / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
    (tmp_path / "private").mkdir()
    return tmp_path


@pytest.fixture
def manager_config(statement_root: Path) -> ManagerConfig:
    return ManagerConfig.from_dict(_config_dict(statement_root))


@pytest_asyncio.fixture
async def sqlite_manager(manager_config: ManagerConfig):
    manager = Manager(manager_config, cache=InMemoryCache(expires_in_ms=60000))
    await manager.init()
    await manager.db.app.create.table.items()
    yield manager
    await manager.close()
