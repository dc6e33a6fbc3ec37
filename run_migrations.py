#!/usr/bin/env python3
"""
Database migration runner for the EduSpark Supabase database.

Applies the SQL files in migrations/ in name order and records each one
in a tracking table, so re-running only applies what is new.

Usage:
    python run_migrations.py                  # Apply pending migrations
    python run_migrations.py --status         # Show migration status
    python run_migrations.py --dry-run        # Show what would run
    python run_migrations.py --seed-config    # Store the default app config if none exists

Configuration:
    Set SUPABASE_DB_URL in your .env file to the direct Postgres connection
    string (Supabase Dashboard → Settings → Database → Connection string → URI).
"""

import argparse
import hashlib
import json
import sys
from pathlib import Path

import psycopg2
from psycopg2 import sql
from rich.console import Console
from rich.table import Table

from modules.entitlements.models import default_app_config
from modules.entitlements.store import CONFIG_ID
from shared.database import get_postgres_connection

console = Console()

MIGRATIONS_DIR = Path(__file__).parent / "migrations"
MIGRATIONS_TABLE = "_migrations"


def checksum_of(sql_file: Path) -> str:
    return hashlib.sha256(sql_file.read_bytes()).hexdigest()[:16]


def get_db_connection():
    """Connect to the database named by SUPABASE_DB_URL, or exit."""
    try:
        return get_postgres_connection()
    except RuntimeError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)
    except psycopg2.Error as e:
        console.print(f"[red]Database connection failed:[/red] {e}")
        sys.exit(1)


def ensure_migrations_table(conn) -> None:
    with conn.cursor() as cur:
        cur.execute(
            sql.SQL("""
                CREATE TABLE IF NOT EXISTS {} (
                    name VARCHAR(255) PRIMARY KEY,
                    checksum VARCHAR(64) NOT NULL,
                    applied_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
                );
            """).format(sql.Identifier(MIGRATIONS_TABLE))
        )
    conn.commit()


def get_applied_migrations(conn) -> dict[str, dict]:
    with conn.cursor() as cur:
        cur.execute(
            sql.SQL("SELECT name, checksum, applied_at FROM {} ORDER BY name").format(
                sql.Identifier(MIGRATIONS_TABLE)
            )
        )
        return {
            name: {"checksum": checksum, "applied_at": applied_at}
            for name, checksum, applied_at in cur.fetchall()
        }


def get_pending_migrations(applied: dict[str, dict]) -> list[Path]:
    """
    Migration files not yet applied, in name order.

    Applied files whose contents changed are reported but not re-run.
    """
    if not MIGRATIONS_DIR.exists():
        console.print(f"[yellow]Warning:[/yellow] Migrations directory not found: {MIGRATIONS_DIR}")
        return []

    pending = []
    for sql_file in sorted(MIGRATIONS_DIR.glob("*.sql")):
        if sql_file.name not in applied:
            pending.append(sql_file)
        elif applied[sql_file.name]["checksum"] != checksum_of(sql_file):
            console.print(f"[yellow]Warning:[/yellow] {sql_file.name} has changed since it was applied")
    return pending


def apply_migration(conn, sql_file: Path) -> None:
    """Run one migration and record it, in a single transaction."""
    console.print(f"[blue]Running:[/blue] {sql_file.name}...")
    try:
        with conn.cursor() as cur:
            cur.execute(sql_file.read_text())
            cur.execute(
                sql.SQL("INSERT INTO {} (name, checksum) VALUES (%s, %s)").format(
                    sql.Identifier(MIGRATIONS_TABLE)
                ),
                (sql_file.name, checksum_of(sql_file)),
            )
        conn.commit()
    except psycopg2.Error as e:
        conn.rollback()
        console.print(f"[red]✗[/red] {sql_file.name} failed: {e}")
        raise
    console.print(f"[green]✓[/green] {sql_file.name}")


def seed_config(conn) -> None:
    """Insert the default app config unless one is already stored."""
    data = json.dumps(default_app_config().model_dump(mode="json"))
    with conn.cursor() as cur:
        cur.execute(
            "INSERT INTO app_config (id, data) VALUES (%s, %s::jsonb) ON CONFLICT (id) DO NOTHING",
            (CONFIG_ID, data),
        )
        inserted = cur.rowcount
    conn.commit()
    if inserted:
        console.print("[green]Default app config stored[/green]")
    else:
        console.print("[dim]App config already present, left unchanged[/dim]")


def show_status(conn) -> None:
    applied = get_applied_migrations(conn)
    pending = get_pending_migrations(applied)

    if not applied and not pending:
        console.print("[dim]No migrations found.[/dim]")
        return

    table = Table(title="Migration Status")
    table.add_column("Migration", style="cyan")
    table.add_column("Status")
    table.add_column("Applied At")

    for name, info in applied.items():
        applied_at = info["applied_at"]
        table.add_row(
            name,
            "[green]Applied[/green]",
            applied_at.strftime("%Y-%m-%d %H:%M:%S") if applied_at else "",
        )
    for sql_file in pending:
        table.add_row(sql_file.name, "[yellow]Pending[/yellow]", "")

    console.print(table)


def main():
    parser = argparse.ArgumentParser(description="Run database migrations for EduSpark")
    parser.add_argument("--status", action="store_true", help="Show migration status only")
    parser.add_argument("--dry-run", action="store_true", help="List pending migrations without running them")
    parser.add_argument(
        "--seed-config",
        action="store_true",
        help="After migrating, store the default app config if none exists",
    )
    args = parser.parse_args()

    console.print("[bold]EduSpark Database Migrations[/bold]")
    console.print()

    conn = get_db_connection()
    try:
        ensure_migrations_table(conn)

        if args.status:
            show_status(conn)
            return

        pending = get_pending_migrations(get_applied_migrations(conn))
        if not pending:
            console.print("[green]All migrations are up to date![/green]")
        elif args.dry_run:
            for sql_file in pending:
                console.print(f"[cyan]Would run:[/cyan] {sql_file.name}")
            return
        else:
            for sql_file in pending:
                apply_migration(conn, sql_file)

        if args.seed_config:
            seed_config(conn)
    finally:
        conn.close()


if __name__ == "__main__":
    main()
