"""Alembic environment for the Stacks library database.

Online runs reuse stacks.database.engine; `alembic upgrade head --sql`
renders the DDL against the same URL without connecting.
"""

from __future__ import annotations

from alembic import context
from sqlmodel import SQLModel

from stacks import models  # noqa: F401  (registers every table on SQLModel.metadata)
from stacks.database import engine

target_metadata = SQLModel.metadata


def run_migrations_offline() -> None:
    context.configure(
        url=str(engine.url),
        target_metadata=target_metadata,
        literal_binds=True,
        render_as_batch=True,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    with engine.connect() as conn:
        # SQLite cannot ALTER most constraints in place; batch mode rebuilds the table
        context.configure(connection=conn, target_metadata=target_metadata, render_as_batch=True)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
