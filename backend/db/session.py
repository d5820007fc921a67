"""
Stockroom Database Session Management

Async engine, session factory and the tenant setting read by the row-level
security policies.

The tenant is stored on the session (`session.info`) and re-applied with
`set_config(..., true)` at the start of every transaction, so it survives the
commits a service issues mid-request.
"""

import uuid

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Session

from core.config import get_settings

settings = get_settings()

TENANT_INFO_KEY = "organization_id"

engine = create_async_engine(
    settings.database_url,
    echo=settings.database_echo,
    pool_size=settings.database_pool_size,
    max_overflow=settings.database_max_overflow,
    pool_pre_ping=True,
)

# Rows stay readable after commit.
AsyncSessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


def _apply_tenant(connection, organization_id: str) -> None:
    # set_config only exists on PostgreSQL; other engines have no RLS to feed.
    if connection.dialect.name != "postgresql":
        return
    connection.execute(
        text("SELECT set_config('app.current_organization_id', :oid, true)"),
        {"oid": organization_id},
    )


@event.listens_for(Session, "after_begin")
def _scope_transaction_to_tenant(session, transaction, connection):
    organization_id = session.info.get(TENANT_INFO_KEY)
    if organization_id is not None:
        _apply_tenant(connection, organization_id)


async def set_tenant(session: AsyncSession, organization_id: uuid.UUID) -> None:
    """Scope this session and every later transaction on it to one organization."""
    session.info[TENANT_INFO_KEY] = str(organization_id)
    if session.in_transaction():
        # The running transaction began before the tenant was known.
        connection = await session.connection()
        await connection.run_sync(_apply_tenant, session.info[TENANT_INFO_KEY])
