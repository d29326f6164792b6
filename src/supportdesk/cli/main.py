"""SupportDesk CLI — run the server, prepare the database, check a deployment.

Usage:
    supportdesk serve --reload                     # API + Socket.IO on :3000
    supportdesk init-db                            # create tables (dev/SQLite)
    supportdesk create-admin -e a@shop.io -n Admin # bootstrap the support admin
    supportdesk doctor --token $JWT                # health + support admin check
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import json
import os
import sys
from typing import Optional

import click
import httpx

from supportdesk import __version__

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

DEFAULT_API_URL = "http://localhost:3000"


def _api_url() -> str:
    return os.environ.get("SUPPORTDESK_API_URL", DEFAULT_API_URL).rstrip("/")


def _client() -> httpx.AsyncClient:
    """Build an async HTTP client pointed at the SupportDesk backend."""
    return httpx.AsyncClient(base_url=_api_url(), timeout=10.0)


def _database_url(override: Optional[str]) -> str:
    if override:
        return override
    from supportdesk.config import settings

    return settings.database_url


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run(coro):
    """Run an async coroutine from a synchronous Click handler.

    When invoked from inside a running loop (CliRunner in async tests),
    the coroutine is offloaded to a worker thread with its own loop.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)
    else:
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
            return pool.submit(asyncio.run, coro).result()


def _pretty_json(data: dict | list) -> str:
    return json.dumps(data, indent=2, default=str)


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version=__version__, prog_name="supportdesk")
def main():
    """SupportDesk — storefront admin backend with realtime chat support."""


# ---------------------------------------------------------------------------
# supportdesk serve
# ---------------------------------------------------------------------------


@main.command()
@click.option("--host", default=None, help="Bind address (default: settings)")
@click.option("--port", type=int, default=None, help="Port (default: settings)")
@click.option("--reload", is_flag=True, help="Auto-reload on code changes")
def serve(host: Optional[str], port: Optional[int], reload: bool):
    """Serve the HTTP API and the Socket.IO endpoint."""
    import uvicorn

    from supportdesk.config import settings

    uvicorn.run(
        "supportdesk.main:asgi_app",
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
    )


# ---------------------------------------------------------------------------
# supportdesk init-db
# ---------------------------------------------------------------------------


@main.command("init-db")
@click.option("--database-url", help="Override SUPPORTDESK_DATABASE_URL")
def init_db(database_url: Optional[str]):
    """Create all tables directly from the models.

    Meant for local SQLite setups; deployed databases use Alembic.
    """
    _run(_init_db_impl(_database_url(database_url)))
    click.secho("Database schema created.", fg="green")


async def _init_db_impl(url: str) -> None:
    from sqlalchemy.ext.asyncio import create_async_engine

    from supportdesk.db.models import Base

    engine = create_async_engine(url)
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    finally:
        await engine.dispose()


# ---------------------------------------------------------------------------
# supportdesk create-admin
# ---------------------------------------------------------------------------


@main.command("create-admin")
@click.option("--email", "-e", required=True, help="Admin email")
@click.option("--name", "-n", required=True, help="Display name")
@click.password_option("--password", "-p", help="Admin password")
@click.option("--database-url", help="Override SUPPORTDESK_DATABASE_URL")
def create_admin(email: str, name: str, password: str, database_url: Optional[str]):
    """Create the support admin account customers chat with."""
    if len(password) < 6:
        click.secho("Password must be at least 6 characters.", fg="red", err=True)
        sys.exit(1)

    from supportdesk.services.user_service import EmailTakenError

    try:
        user = _run(_create_admin_impl(_database_url(database_url), email, name, password))
    except EmailTakenError:
        click.secho(f"An account with email {email} already exists.", fg="red", err=True)
        sys.exit(1)

    click.secho(f"Admin created: {user['name']} <{user['email']}>", fg="green")
    click.echo(f"  id: {user['id']}")


async def _create_admin_impl(url: str, email: str, name: str, password: str) -> dict:
    from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine

    from supportdesk.db.models import ROLE_ADMIN
    from supportdesk.services.user_service import UserService

    engine = create_async_engine(url)
    try:
        async with AsyncSession(engine, expire_on_commit=False) as db:
            user = await UserService(db).create_user(
                email=email, name=name, password=password, role=ROLE_ADMIN,
                actor_id="cli",
            )
            return {"id": str(user.id), "name": user.name, "email": user.email}
    finally:
        await engine.dispose()


# ---------------------------------------------------------------------------
# supportdesk doctor
# ---------------------------------------------------------------------------


@main.command()
@click.option("--token", envvar="SUPPORTDESK_TOKEN", help="JWT for the chat checks")
@click.option("--json", "as_json", is_flag=True, help="Print raw JSON")
def doctor(token: Optional[str], as_json: bool):
    """Check a running backend: health, dependencies and the support admin."""
    report = _run(_doctor_impl(token))

    if as_json:
        click.echo(_pretty_json(report))
    else:
        for name, value in report["checks"].items():
            ok = value == "ok" or name in ("version", "admin_email")
            click.secho(f"{name:<14} {value}", fg="green" if ok else "red")

    if not report["healthy"]:
        click.secho("Some checks failed.", fg="yellow", err=True)
        sys.exit(1)


async def _doctor_impl(token: Optional[str]) -> dict:
    checks: dict[str, str] = {}
    async with _client() as c:
        try:
            r = await c.get("/api/v1/health")
            r.raise_for_status()
            health = r.json()
            for key in ("server", "version", "database", "redis"):
                if key in health:
                    checks[key] = str(health[key])
        except httpx.HTTPError as e:
            checks["server"] = f"error: {e}"

        if token and checks.get("server") == "ok":
            r = await c.get(
                "/api/v1/chat/admin",
                headers={"Authorization": f"Bearer {token}"},
            )
            if r.status_code == 200:
                admin = r.json()
                checks["support_admin"] = "ok"
                checks["admin_email"] = admin["email"]
            else:
                checks["support_admin"] = f"error: HTTP {r.status_code}"

    # Redis is optional; everything else must pass
    required = {k: v for k, v in checks.items() if k not in ("version", "redis", "admin_email")}
    healthy = bool(required) and all(v == "ok" for v in required.values())
    return {"healthy": healthy, "checks": checks}


if __name__ == "__main__":
    main()
