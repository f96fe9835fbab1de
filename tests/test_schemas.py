"""Tests for relsync.schemas module.

Coverage:
- get_sql_schema(name) - Return bundled SQL
- join_table_definitions(registry) - Columns, options and unique key per join table
- render_create_table() / install_join_tables()
"""

import pytest

from relsync.core.registry import RelationRegistry
from relsync.declarations import SchemaStore
from relsync.schemas import (
    JoinTableDefinition,
    get_sql_schema,
    install_join_tables,
    join_table_definitions,
    render_create_table,
)


def relation(related_table, **extra):
    return {"relation": {"type": "many-to-many", "relatedTable": related_table, **extra}}


class TestGetSqlSchema:
    """Tests for get_sql_schema function."""

    def test_get_undo_schema(self):
        """get_sql_schema('undo') returns the undo table DDL."""
        schema = get_sql_schema("undo")

        assert "CREATE TABLE IF NOT EXISTS relsync_undo" in schema
        assert "PRIMARY KEY" in schema

    def test_invalid_name_raises_value_error(self):
        """get_sql_schema with an unknown name raises ValueError."""
        with pytest.raises(ValueError, match="Invalid schema"):
            get_sql_schema("core")


class TestJoinTableDefinitions:
    """Tests for join_table_definitions()."""

    def test_columns_and_unique_key(self, schema, settings):
        """Each join table gets both columns and one unique key."""
        definitions = join_table_definitions(RelationRegistry(schema, settings))

        assert list(definitions) == ["member_group"]
        member_group = definitions["member_group"]
        assert member_group.columns == {
            "member_id": settings.default_column_sql,
            "group_id": settings.default_column_sql,
        }
        assert member_group.unique_keys == {"member_id_group_id": ("member_id", "group_id")}
        assert member_group.options is None

    def test_skip_install(self, settings):
        """Relations flagged skipInstall contribute nothing."""
        schema = SchemaStore(declarations={
            "member": {"fields": {"groups": relation("group", skipInstall=True)}},
        })

        assert join_table_definitions(RelationRegistry(schema, settings)) == {}

    def test_shared_join_table_single_unique_key(self, settings):
        """Relations sharing a join table add columns but only the first unique key."""
        schema = SchemaStore(declarations={
            "member": {"fields": {
                "groups": relation("group", relationTable="links"),
                "teams": relation("team", relationTable="links", fieldColumn="team_id",
                                  fieldSql="TEXT", tableSql="STRICT"),
            }},
        })
        links = join_table_definitions(RelationRegistry(schema, settings))["links"]

        assert list(links.columns) == ["member_id", "group_id", "team_id"]
        assert links.columns["team_id"] == "TEXT"
        assert list(links.unique_keys) == ["member_id_group_id"]
        assert links.options == "STRICT"


class TestRenderAndInstall:
    """Tests for render_create_table() and install_join_tables()."""

    def test_render(self):
        """DDL lists the columns, then the unique constraint."""
        ddl = render_create_table(JoinTableDefinition(
            name="member_group",
            columns={"member_id": "INTEGER NOT NULL", "group_id": "INTEGER NOT NULL"},
            unique_keys={"member_id_group_id": ("member_id", "group_id")},
        ))

        assert ddl == (
            'CREATE TABLE IF NOT EXISTS "member_group" (\n'
            '    "member_id" INTEGER NOT NULL,\n'
            '    "group_id" INTEGER NOT NULL,\n'
            '    CONSTRAINT "member_id_group_id" UNIQUE ("member_id", "group_id")\n'
            ');'
        )

    def test_render_options(self):
        """Table options follow the closing parenthesis."""
        ddl = render_create_table(JoinTableDefinition(
            name="links", columns={"a_id": "INTEGER"}, options="STRICT",
        ))

        assert ddl.endswith(") STRICT;")

    def test_install_creates_missing_tables(self, storage, schema, settings):
        """install_join_tables creates missing tables and reports them."""
        registry = RelationRegistry(schema, settings)

        assert install_join_tables(storage, registry) == ["member_group"]
        assert storage.table_columns("member_group") == ["member_id", "group_id"]
        assert install_join_tables(storage, registry) == []

    def test_init_db(self, core):
        """RelationsCore.init_db installed the undo and join tables."""
        tables = core.storage.list_tables()

        assert "relsync_undo" in tables
        assert "member_group" in tables
