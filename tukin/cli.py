"""Tukin CLI tool (tukinctl)."""

from typing import List

import typer
from sqlalchemy.engine import make_url

app = typer.Typer(name="tukinctl", help="Tukin RBAC CLI")
db_app = typer.Typer(help="Database management commands")
roles_app = typer.Typer(help="Permission encoding helpers")
app.add_typer(db_app, name="db")
app.add_typer(roles_app, name="roles")


@db_app.command("create")
def db_create():
    """Create the MySQL database if it doesn't exist."""
    import pymysql
    from tukin.core.config import settings

    url = make_url(settings.DATABASE_URL)
    conn = pymysql.connect(
        host=url.host or "localhost",
        port=url.port or 3306,
        user=url.username,
        password=url.password or "",
    )
    try:
        cursor = conn.cursor()
        cursor.execute(
            f"CREATE DATABASE IF NOT EXISTS `{url.database}` "
            "CHARACTER SET utf8mb4 COLLATE utf8mb4_unicode_ci"
        )
        conn.commit()
        typer.echo(f"✅ Database '{url.database}' created (or already exists)")
    finally:
        conn.close()


@db_app.command("init")
def db_init():
    """Create all tables."""
    from tukin.db.base import Base
    from tukin.db.session import engine
    import tukin.models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    typer.echo("✅ Tables created")


@db_app.command("seed")
def db_seed():
    """Seed the fixed roles and the administrator user."""
    from tukin.core.config import settings
    from tukin.db.session import SessionLocal
    from tukin.db.seeds.seed_roles import seed_roles
    from tukin.db.seeds.seed_admin import seed_admin

    db = SessionLocal()
    try:
        seed_roles(db)
        seed_admin(db, settings)
    finally:
        db.close()
    typer.echo("✅ All seeds applied")


@roles_app.command("encode")
def roles_encode(
    categories: List[str] = typer.Argument(..., help="Category digits, e.g. 4 2"),
):
    """Print the canonical encoding for a set of categories."""
    from tukin.services import permission_codec

    unknown = [c for c in categories if not permission_codec.category_from(c)]
    if unknown:
        typer.echo(f"Unknown categories: {', '.join(unknown)}", err=True)
        raise typer.Exit(code=1)
    typer.echo(permission_codec.encode(categories))


@roles_app.command("decode")
def roles_decode(
    code: str = typer.Argument(..., help="Encoded permission string, e.g. 24"),
):
    """Show the categories and derived permissions of an encoding."""
    from tukin.services import permission_codec

    for row in permission_codec.describe(permission_codec.decode(code)):
        if row["granted"]:
            typer.echo(f"[{row['digit']}] {row['name']}: {', '.join(row['permissions'])}")


@app.command("serve")
def serve(
    host: str = typer.Option("0.0.0.0", help="Host"),
    port: int = typer.Option(8000, help="Port"),
    reload: bool = typer.Option(False, help="Auto-reload"),
):
    """Start the FastAPI server."""
    import uvicorn
    uvicorn.run("tukin.main:app", host=host, port=port, reload=reload)


if __name__ == "__main__":
    app()
