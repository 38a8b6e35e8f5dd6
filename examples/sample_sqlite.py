import asyncio
from dataclasses import replace
from datetime import datetime, timezone
import logging
from pathlib import Path

from sqlcraft import (
    ExecOptions,
    InMemoryCache,
    LifecycleOptions,
    Manager,
    ManagerConfig,
    ObservabilitySettings,
    StatementMetrics,
)

HERE = Path(__file__).resolve().parent


def build_config() -> ManagerConfig:
    return ManagerConfig.from_dict(
        {
            "main_path": str(HERE / "db"),
            "private_path": str(HERE.parent / "static" / "test-sqlite"),
            "univ": {"db": {"sample-db": {}}},
            "db": {
                "dialects": {"sqlite": "sqlcraft.execution.sqlite:SqliteDialect"},
                "connections": [
                    {
                        "id": "sample-db",
                        "name": "sample",
                        "version": 1,
                        "binds": {"minAge": 18},
                        "sql": {"dialect": "sqlite", "database": "sample.sqlite", "log": ["example"]},
                    }
                ],
            },
        }
    )


async def main():
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s %(message)s")

    metrics = StatementMetrics()
    config = build_config()
    # Attach the metrics observer to every connection
    config = replace(
        config,
        connections=tuple(
            replace(profile, observability=ObservabilitySettings(event_observer=metrics))
            for profile in config.connections
        ),
    )
    config.private_path.mkdir(parents=True, exist_ok=True)

    manager = Manager(config, cache=InMemoryCache(expires_in_ms=30000))
    counts = await manager.init()
    print(f"Prepared statements per connection: {counts}")

    sample = manager.db.sample
    try:
        print("Creating table 'sample_users'...")
        await sample.create.table.users()
        await sample.delete.users()

        print("Inserting sample data...")
        users_data = [(1, "Alice", 30), (2, "Bob", 15), (3, "Charlie", 35)]
        joined = datetime.now(timezone.utc)
        for user_id, name, age in users_data:
            await sample.create.user(ExecOptions(binds={"id": user_id, "name": name, "age": age, "joined": joined}))
        await manager.commit()
        print(f"Inserted {len(users_data)} users successfully!")

        everyone = await sample.read.users(ExecOptions(binds={"ids": [1, 2, 3]}))
        print(f"All users: {everyone}")

        adults = await sample.read.users(ExecOptions(binds={"ids": [1, 2, 3]}), ["adults"])
        print(f"Adults only: {adults}")

        summary = await sample.reports.read.summary()
        print(f"Summary: {summary}")
    finally:
        await manager.close(LifecycleOptions(execute_in_series=True))

    for connection, statements in metrics.snapshot().items():
        for path, stats in statements.items():
            print(f"{connection} {path}: {stats.calls} call(s), {stats.rows} row(s), {stats.average_ms:.2f} ms avg")


if __name__ == "__main__":
    asyncio.run(main())
