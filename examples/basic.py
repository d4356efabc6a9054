# libSQL SDK Examples

# Meant to be run cell by cell (select a block and Shift+Enter with a Jupyter-like runner),
# or as a whole with `python examples/basic.py`.
# Use the comments as cell definitions

# Load requirements

import asyncio
import logging

from dotenv import load_dotenv

from libsql_sdk import ConstraintError, LibSQL, LibSQLClient

# Load environment from .env (LIBSQL_URL, LIBSQL_AUTH_TOKEN, optional LIBSQL_TIMEOUT)
load_dotenv()
logging.basicConfig(level=logging.INFO)


async def create_schema(db: LibSQLClient) -> None:
    # Raw scripts run every statement in order
    await db.execute_script(
        """
        DROP TABLE IF EXISTS users;
        CREATE TABLE users (
            id INTEGER PRIMARY KEY,
            email TEXT NOT NULL UNIQUE,
            name TEXT NOT NULL,
            avatar BLOB
        );
        """
    )


async def insert_users(db: LibSQLClient) -> None:
    # Single statements, positional and named arguments
    rs = await db.execute("INSERT INTO users (email, name) VALUES (?, ?)", ["alice@example.com", "Alice"])
    print("Inserted Alice with rowid", rs.last_insert_rowid)

    await db.execute(
        "INSERT INTO users (email, name, avatar) VALUES (:email, :name, :avatar)",
        {":email": "bob@example.com", ":name": "Bob", ":avatar": b"\x89PNG"},
    )


async def atomic_insert(db: LibSQLClient) -> None:
    # All or nothing: the duplicate email rolls back the whole batch
    try:
        await db.execute_transactional_batch(
            [
                ("INSERT INTO users (email, name) VALUES (?, ?)", ["carol@example.com", "Carol"]),
                ("INSERT INTO users (email, name) VALUES (?, ?)", ["alice@example.com", "Alice again"]),
            ]
        )
    except ConstraintError as e:
        print(f"Rolled back: {e.constraint_type} on {e.table_name}.{e.column_name}")

    # Queued transaction, committed as one transactional batch on exit
    async with db.transaction() as tx:
        await tx.insert("users", {"email": "dave@example.com", "name": "Dave"})
        await tx.execute("UPDATE users SET name = upper(name) WHERE email = ?", ["dave@example.com"])
    print("Transaction affected", tx.affected_row_count, "row(s)")


async def list_users(db: LibSQLClient) -> None:
    rs = await db.execute("SELECT id, email, name, avatar FROM users ORDER BY id")
    for user in rs.as_dicts():
        print(user)


async def main() -> None:
    async with LibSQL.from_env() as db:
        if not await db.ping():
            print(f"Server at {db.url} is not reachable")
            return
        await create_schema(db)
        await insert_users(db)
        await atomic_insert(db)
        await list_users(db)


if __name__ == "__main__":
    asyncio.run(main())
