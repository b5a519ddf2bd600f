from sqlalchemy import create_engine, pool
from alembic import context

from elegance.core.config import settings
from elegance.db.session import Base
import elegance.db.models  # noqa

config = context.config

# own version table so the schema can live in a database shared with other apps
MIGRATION_OPTS = dict(
    target_metadata=Base.metadata,
    version_table="alembic_version_store",
    compare_type=True,
)


def run_offline():
    context.configure(url=settings.POSTGRES_DSN, literal_binds=True, dialect_opts={"paramstyle": "named"}, **MIGRATION_OPTS)
    with context.begin_transaction():
        context.run_migrations()


def run_online():
    engine = create_engine(settings.POSTGRES_DSN, poolclass=pool.NullPool)
    with engine.connect() as connection:
        context.configure(connection=connection, **MIGRATION_OPTS)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_offline()
else:
    run_online()
