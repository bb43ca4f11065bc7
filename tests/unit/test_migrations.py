"""
The initial migration builds the same schema as the models
"""

import importlib.util
from pathlib import Path

import pytest
from alembic.operations import Operations
from alembic.runtime.migration import MigrationContext
from sqlalchemy import create_engine, inspect, text
from sqlalchemy.exc import IntegrityError

from app.domain.models import Base
from app.infrastructure.repositories import is_order_number_conflict

VERSIONS = Path(__file__).resolve().parents[2] / "services" / "orders" / "alembic" / "versions"


def load_revision(name: str):
    spec = importlib.util.spec_from_file_location(name, VERSIONS / f"{name}.py")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.fixture
def migrated():
    engine = create_engine("sqlite://")
    with engine.begin() as connection:
        with Operations.context(MigrationContext.configure(connection)):
            load_revision("0001_init").upgrade()
    yield engine
    engine.dispose()


class TestInitialMigration:
    def test_is_the_first_revision(self):
        revision = load_revision("0001_init")
        assert revision.revision == "0001_init"
        assert revision.down_revision is None

    def test_creates_every_model_table(self, migrated):
        assert set(inspect(migrated).get_table_names()) == set(Base.metadata.tables)

    def test_columns_match_the_models(self, migrated):
        inspector = inspect(migrated)
        for name, table in Base.metadata.tables.items():
            migrated_columns = {c["name"]: c["nullable"] for c in inspector.get_columns(name)}
            model_columns = {c.name: c.nullable for c in table.columns}
            assert migrated_columns == model_columns, name

    def test_order_number_is_unique(self, migrated):
        row = {"number": "ORD-20261019-AB12", "now": "2026-10-19 09:00:00"}
        insert = text(
            "INSERT INTO orders (order_number, shipping_address, payment_method, status, subtotal, shipping_cost, "
            "discount, loyalty_discount, loyalty_points_used, total, locale, created_at, updated_at) "
            "VALUES (:number, '{}', 'cod', 'pending', 0, 0, 0, 0, 0, 0, 'en', :now, :now)"
        )
        with migrated.begin() as connection:
            connection.execute(insert, row)

        with pytest.raises(IntegrityError) as caught:
            with migrated.begin() as connection:
                connection.execute(insert, row)
        assert is_order_number_conflict(caught.value)

    def test_downgrade_drops_everything(self, migrated):
        with migrated.begin() as connection:
            with Operations.context(MigrationContext.configure(connection)):
                load_revision("0001_init").downgrade()
        assert inspect(migrated).get_table_names() == []
