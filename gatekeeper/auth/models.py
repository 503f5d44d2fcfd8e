"""
Database models: SQLite user store.

Uses parameterized queries exclusively (? placeholders) to prevent
SQL injection. Per OWASP ASVS V5.3.4.

Connection management uses Flask's g object for per-request connections,
with check_same_thread=False for Flask's multi-threaded request handling.
"""

import logging
import os
import sqlite3
from typing import Optional

from flask import current_app, g

logger = logging.getLogger(__name__)

DEMO_EMAIL = 'demo@example.com'
DEMO_PASSWORD = 'SecureP@ss123!'


def _db_path(app) -> str:
    return os.path.join(app.instance_path, app.config['DATABASE_NAME'])


def get_db() -> sqlite3.Connection:
    """
    Get a database connection for the current request.

    Connections are stored in Flask's g object and reused within
    a single request. Closed automatically via teardown_appcontext.
    """
    if 'db' not in g:
        g.db = sqlite3.connect(_db_path(current_app), check_same_thread=False)
        g.db.row_factory = sqlite3.Row
        g.db.execute('PRAGMA journal_mode=WAL')
    return g.db


def close_db(exception=None) -> None:
    """Close the database connection at the end of the request."""
    db = g.pop('db', None)
    if db is not None:
        db.close()


def init_db(app) -> None:
    """
    Create the users table and seed the demo user.

    CREATE TABLE IF NOT EXISTS keeps this idempotent: safe to call
    on every app startup without data loss.
    """
    from gatekeeper.extensions import bcrypt

    conn = sqlite3.connect(_db_path(app), check_same_thread=False)
    try:
        conn.execute('''
            CREATE TABLE IF NOT EXISTS users (
                id            INTEGER PRIMARY KEY AUTOINCREMENT,
                email         TEXT UNIQUE NOT NULL,
                password_hash TEXT NOT NULL,
                created_at    TEXT NOT NULL DEFAULT (datetime('now'))
            )
        ''')
        conn.commit()

        count = conn.execute('SELECT COUNT(*) FROM users').fetchone()[0]
        if count == 0:
            password_hash = bcrypt.generate_password_hash(DEMO_PASSWORD).decode('utf-8')
            conn.execute(
                'INSERT INTO users (email, password_hash) VALUES (?, ?)',
                (DEMO_EMAIL, password_hash),
            )
            conn.commit()
            logger.info('Demo user created: %s', DEMO_EMAIL)
    finally:
        conn.close()


def get_user_by_email(email: str) -> Optional[sqlite3.Row]:
    """Look up a user by normalized email; None if not found."""
    db = get_db()
    cursor = db.execute(
        'SELECT id, email, password_hash FROM users WHERE email = ?',
        (email,),
    )
    return cursor.fetchone()


def create_user(email: str, password_hash: str) -> bool:
    """Insert a user. Returns False if the email is already registered."""
    db = get_db()
    try:
        db.execute(
            'INSERT INTO users (email, password_hash) VALUES (?, ?)',
            (email, password_hash),
        )
        db.commit()
    except sqlite3.IntegrityError:
        return False
    return True
