"""Pytest fixtures for relsync tests.

Every test gets its own SQLite database under tmp_path with three record
tables (member, group, category) and the declarations relating them:

    member.groups  --many-to-many-->  group   (join table member_group)
    group.category --foreignKey----->  category.title
"""

import pytest

from relsync.config import Settings
from relsync.core import RelationsCore
from relsync.declarations import SchemaStore
from relsync.storage import Storage

RECORD_TABLES = """
CREATE TABLE member (
    id INTEGER PRIMARY KEY,
    name TEXT,
    alias TEXT,
    groups TEXT,
    tstamp INTEGER NOT NULL DEFAULT 0
);
CREATE TABLE "group" (
    id INTEGER PRIMARY KEY,
    name TEXT,
    category INTEGER,
    tstamp INTEGER NOT NULL DEFAULT 0
);
CREATE TABLE category (
    id INTEGER PRIMARY KEY,
    title TEXT
);
"""


def member_declaration(**relation_overrides):
    """Declaration of the member table; relation_overrides patch groups' relation block."""
    relation = {
        "type": "many-to-many",
        "relatedTable": "group",
        "relationTable": "member_group",
        "filter": True,
        "search": True,
    }
    relation.update(relation_overrides)
    return {
        "fields": {
            "name": {"label": "Name", "search": True},
            "alias": {"label": "Alias"},
            "groups": {"label": "Groups", "relation": relation},
        }
    }


GROUP_DECLARATION = {
    "fields": {
        "name": {"label": "Name", "search": True},
        "category": {"label": "Category", "search": True, "foreignKey": "category.title"},
        "notes": {"label": "Notes"},
    }
}

CATEGORY_DECLARATION = {
    "fields": {
        "title": {"label": "Title"},
    }
}


@pytest.fixture
def settings(tmp_path):
    """Settings isolated from the user's config file."""
    return Settings(
        config_path=tmp_path / "missing.toml",
        database_path=tmp_path / "relsync.db",
        db_collation="utf8mb4_unicode_ci",
        table_prefix="tl_",
        undo_category="relations",
        revision_column="tstamp",
    )


@pytest.fixture
def schema():
    """SchemaStore with member/group/category declarations."""
    return SchemaStore(declarations={
        "member": member_declaration(),
        "group": GROUP_DECLARATION,
        "category": CATEGORY_DECLARATION,
    })


@pytest.fixture
def storage(tmp_path):
    """Active Storage over a fresh database with the record tables."""
    with Storage(tmp_path / "relsync.db") as storage:
        storage.execute_script(RECORD_TABLES)
        yield storage


@pytest.fixture
def core(storage, schema, settings):
    """RelationsCore with the undo table and join tables installed."""
    core = RelationsCore(storage, schema=schema, settings=settings)
    core.init_db()
    return core


@pytest.fixture
def ctx(core):
    """Fresh OperationContext."""
    return core.new_context()


@pytest.fixture
def records(storage):
    """Seed categories, groups and members.

    Members 1 and 2 are complete (tstamp set); member 3 is still
    incomplete (tstamp 0).
    """
    storage.insert("category", {"id": 1, "title": "Staff"})
    storage.insert("category", {"id": 2, "title": "External"})

    storage.insert("group", {"id": 1, "name": "Admins", "category": 1, "tstamp": 100})
    storage.insert("group", {"id": 2, "name": "editors", "category": 1, "tstamp": 100})
    storage.insert("group", {"id": 3, "name": "Guests", "category": 2, "tstamp": 100})

    storage.insert("member", {"id": 1, "name": "Alice", "alias": "al", "tstamp": 100})
    storage.insert("member", {"id": 2, "name": "Bob", "alias": "bo", "tstamp": 100})
    storage.insert("member", {"id": 3, "name": "Carol", "alias": "ca", "tstamp": 0})
    return storage


def join_rows(storage, table="member_group"):
    """All join rows as (member_id, group_id) tuples, in insertion order."""
    return [(row["member_id"], row["group_id"]) for row in storage.fetch_rows(table)]


PAGE_DECLARATION = {
    "fields": {
        "title": {"label": "Title"},
        "related": {
            "label": "Related pages",
            "relation": {
                "type": "many-to-many",
                "relatedTable": "page",
                "relationTable": "page_related",
                "referenceColumn": "page_id",
                "fieldColumn": "related_id",
            },
        },
    }
}


@pytest.fixture
def pages(core):
    """Pages 1-3 related to each other: 1 -> 2, 3 -> 1, 2 -> 3."""
    core.storage.execute_script("CREATE TABLE page (id INTEGER PRIMARY KEY, title TEXT)")
    core.schema.register("page", PAGE_DECLARATION)
    core.registry.clear()
    core.init_db()

    for page_id in (1, 2, 3):
        core.storage.insert("page", {"id": page_id, "title": f"Page {page_id}"})

    ctx = core.new_context()
    core.synchronizer.save(ctx, "page", "related", 1, [2])
    core.synchronizer.save(ctx, "page", "related", 3, [1])
    core.synchronizer.save(ctx, "page", "related", 2, [3])
    return core


def page_rows(storage):
    """All page_related rows as sorted (page_id, related_id) tuples."""
    return sorted((row["page_id"], row["related_id"]) for row in storage.fetch_rows("page_related"))
