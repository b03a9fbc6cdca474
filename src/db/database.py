# manages connection to db, provides helper methods internal to db package
import asyncio
import os.path
import sqlite3
from contextlib import asynccontextmanager
from decimal import Decimal
from sqlite3 import Row

import aiosqlite
from werkzeug.security import generate_password_hash

from utils import config
from utils.logger import get_logger

_logger = get_logger(__name__)

DB_PATH = config.DB_PATH
_HERE = os.path.dirname(os.path.abspath(__file__))
DB_INIT_SCRIPTS = [
    os.path.join(_HERE, "schema.sql"),
    os.path.join(_HERE, "seed.sql"),
]

# uid -> password for the seeded demo accounts
DEMO_PASSWORDS = {
    9001: "admin123",
    1001: "alice123",
    1002: "bala123",
    1003: "charan123",
    1004: "devi123",
}

# money columns are TEXT; Decimal values are written as their exact string form
sqlite3.register_adapter(Decimal, str)

_initialized = False
_init_lock = asyncio.Lock()


async def _init_db(conn: aiosqlite.Connection) -> None:
    for script in DB_INIT_SCRIPTS:
        if not os.path.exists(script) or os.path.getsize(script) == 0:
            continue
        _logger.info(f"Initializing database with script {os.path.basename(script)}...")
        with open(script, "r", encoding="utf-8") as f:
            await conn.executescript(f.read())
    for uid, pwd in DEMO_PASSWORDS.items():
        await conn.execute(
            "UPDATE users SET pwd_hash = ? WHERE uid = ? AND pwd_hash = '!';",
            (generate_password_hash(pwd), uid),
        )
    await conn.commit()


async def _table_exists(conn: aiosqlite.Connection, table_name: str) -> bool:
    cur = await conn.execute(
        """
        SELECT name
        FROM sqlite_master
        WHERE type = 'table'
          AND name = ?;
        """,
        (table_name,),
    )
    row = await cur.fetchone()
    await cur.close()
    return row is not None


@asynccontextmanager
async def connect() -> aiosqlite.Connection:
    """Async context manager yielding an aiosqlite connection with FK enabled.

    Ensures the database is initialized (tables and seed data) on first use.
    """
    global _initialized
    folder = os.path.dirname(DB_PATH)
    if folder:
        os.makedirs(folder, exist_ok=True)
    conn = await aiosqlite.connect(DB_PATH)
    conn.row_factory = Row
    await conn.execute("PRAGMA foreign_keys = ON;")

    if not _initialized:
        async with _init_lock:
            if not _initialized:
                if not await _table_exists(conn, "users"):
                    _logger.info("Initializing database...")
                    await _init_db(conn)
                _initialized = True
    try:
        yield conn
    finally:
        await conn.close()
