# backend/tests/unit/test_migrations.py
"""The alembic revisions build the same schema as the models."""
from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, inspect

from learnflow.models import Base

BACKEND_DIR = Path(__file__).resolve().parents[2]


def alembic_config(url: str) -> Config:
    config = Config(str(BACKEND_DIR / "alembic.ini"))
    config.set_main_option("script_location", str(BACKEND_DIR / "alembic"))
    config.set_main_option("sqlalchemy.url", url)
    return config


def schema(engine):
    inspector = inspect(engine)
    tables = {}
    for table in inspector.get_table_names():
        if table == "alembic_version":
            continue
        tables[table] = {
            "columns": {c["name"]: c["nullable"] for c in inspector.get_columns(table)},
            "indexes": {(i["name"], bool(i["unique"])) for i in inspector.get_indexes(table)},
            "unique": {tuple(sorted(u["column_names"])) for u in inspector.get_unique_constraints(table)},
            "foreign_keys": {
                (tuple(fk["constrained_columns"]), fk["referred_table"])
                for fk in inspector.get_foreign_keys(table)
            },
        }
    return tables


class TestMigrations:
    def test_upgrade_head_matches_models(self, tmp_path):
        migrated = create_engine(f"sqlite:///{tmp_path / 'migrated.db'}")
        reference = create_engine(f"sqlite:///{tmp_path / 'reference.db'}")

        command.upgrade(alembic_config(str(migrated.url)), "head")
        Base.metadata.create_all(bind=reference)

        assert schema(migrated) == schema(reference)
        migrated.dispose()
        reference.dispose()

    def test_partial_unique_index_is_created(self, tmp_path):
        engine = create_engine(f"sqlite:///{tmp_path / 'migrated.db'}")

        command.upgrade(alembic_config(str(engine.url)), "head")

        indexes = {i["name"]: i for i in inspect(engine).get_indexes("flow_assignments")}
        assert indexes["uq_flow_assignments_active_user_flow"]["unique"]
        assert indexes["uq_flow_assignments_active_user_flow"]["column_names"] == ["user_id", "flow_id"]
        engine.dispose()

    def test_downgrade_base_drops_everything(self, tmp_path):
        engine = create_engine(f"sqlite:///{tmp_path / 'migrated.db'}")
        config = alembic_config(str(engine.url))

        command.upgrade(config, "head")
        command.downgrade(config, "base")

        assert inspect(engine).get_table_names() == ["alembic_version"]
        engine.dispose()
