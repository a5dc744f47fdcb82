from alembic import context
from sqlalchemy import create_engine, pool

from catalog.db import FTS_TABLE
from catalog.models import Base
from catalog.settings import settings

config = context.config
target_metadata = Base.metadata


def include_object(object, name, type_, reflected, compare_to):
    # FTS5 가상 테이블과 그 shadow 테이블은 autogenerate 대상에서 제외
    if type_ == "table" and name and name.startswith(FTS_TABLE):
        return False
    return True


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode."""
    context.configure(
        url=settings.database_url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        include_object=include_object,
        render_as_batch=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode against settings.database_url."""
    engine = create_engine(settings.database_url, poolclass=pool.NullPool)

    with engine.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            include_object=include_object,
            render_as_batch=True,
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
