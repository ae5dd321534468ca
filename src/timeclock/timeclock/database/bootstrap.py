from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Iterable, Optional

import mysql.connector
from werkzeug.security import generate_password_hash

from .connection import DBConfig

log = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).resolve().parent / "schema.sql"


def _strip_create_db_and_use(sql: str) -> str:
    # Keep schema.sql compatible regardless of DB name.
    sql = re.sub(r"(?im)^\s*CREATE\s+DATABASE\b.*?;\s*$", "", sql)
    sql = re.sub(r"(?im)^\s*USE\b.*?;\s*$", "", sql)
    return sql


def iter_sql_statements(sql: str) -> Iterable[str]:
    # Minimal SQL splitter for schema files (handles ';' inside quotes).
    buf: list[str] = []
    in_single = False
    in_double = False
    escape = False

    for ch in sql:
        if escape:
            buf.append(ch)
            escape = False
            continue

        if ch == "\\":
            buf.append(ch)
            escape = True
            continue

        if ch == "'" and not in_double:
            in_single = not in_single
            buf.append(ch)
            continue

        if ch == '"' and not in_single:
            in_double = not in_double
            buf.append(ch)
            continue

        if ch == ";" and not in_single and not in_double:
            stmt = "".join(buf).strip()
            buf.clear()
            if stmt:
                yield stmt
            continue

        buf.append(ch)

    tail = "".join(buf).strip()
    if tail:
        yield tail


def _connect(target: DBConfig, *, with_database: bool = True):
    kwargs = dict(host=target.host, port=target.port, user=target.user, password=target.password, use_pure=True)
    if with_database:
        kwargs["database"] = target.database
    return mysql.connector.connect(**kwargs)


def ensure_database_exists(db_config: dict) -> None:
    target = DBConfig.from_dict(db_config)
    conn = _connect(target, with_database=False)
    try:
        cur = conn.cursor()
        cur.execute(
            f"CREATE DATABASE IF NOT EXISTS `{target.database}` CHARACTER SET utf8mb4 COLLATE utf8mb4_unicode_ci;"
        )
        conn.commit()
    finally:
        conn.close()


def apply_schema(db_config: dict, *, schema_path: Optional[str | Path] = None) -> None:
    target = DBConfig.from_dict(db_config)
    ensure_database_exists(db_config)

    schema_path = Path(schema_path or SCHEMA_PATH)
    sql = _strip_create_db_and_use(schema_path.read_text(encoding="utf-8"))

    conn = _connect(target)
    try:
        cur = conn.cursor()
        for stmt in iter_sql_statements(sql):
            cur.execute(stmt)
        conn.commit()
    finally:
        conn.close()
    log.info("Schema applied to %s@%s:%s/%s", target.user, target.host, target.port, target.database)


def ensure_demo_user(
    db_config: dict,
    *,
    company_name: str = "Demo Company",
    full_name: str = "Demo Employee",
    username: str = "employee",
    password: str = "employee123",
) -> int:
    """Create (or refresh) a demo company with one active member; returns the user id."""
    target = DBConfig.from_dict(db_config)
    conn = _connect(target)
    try:
        cur = conn.cursor(dictionary=True)

        cur.execute("SELECT company_id FROM companies WHERE company_name=%s", (company_name,))
        row = cur.fetchone()
        if row:
            company_id = int(row["company_id"])
        else:
            cur.execute("INSERT INTO companies (company_name) VALUES (%s)", (company_name,))
            company_id = int(cur.lastrowid)

        password_hash = generate_password_hash(password)
        cur.execute("SELECT user_id FROM users WHERE username=%s", (username,))
        row = cur.fetchone()
        if row:
            user_id = int(row["user_id"])
            cur.execute(
                "UPDATE users SET full_name=%s, password_hash=%s, is_active=1 WHERE user_id=%s",
                (full_name, password_hash, user_id),
            )
        else:
            cur.execute(
                "INSERT INTO users (full_name, username, password_hash) VALUES (%s, %s, %s)",
                (full_name, username, password_hash),
            )
            user_id = int(cur.lastrowid)

        cur.execute(
            "SELECT member_id FROM company_members WHERE user_id=%s AND company_id=%s",
            (user_id, company_id),
        )
        if cur.fetchone():
            cur.execute(
                "UPDATE company_members SET is_active=1 WHERE user_id=%s AND company_id=%s",
                (user_id, company_id),
            )
        else:
            cur.execute(
                "INSERT INTO company_members (user_id, company_id) VALUES (%s, %s)",
                (user_id, company_id),
            )

        conn.commit()
        return user_id
    finally:
        conn.close()


def list_tables(db_config: dict) -> list[str]:
    conn = _connect(DBConfig.from_dict(db_config))
    try:
        cur = conn.cursor()
        cur.execute("SHOW TABLES")
        return [row[0] for row in cur.fetchall()]
    finally:
        conn.close()
