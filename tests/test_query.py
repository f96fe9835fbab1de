"""Tests for relsync.core.query.

Coverage:
- intersect() None vs empty-set semantics
- apply_filters() over the session's filter selections
- search() with case folding, foreignKey indirection and invalid patterns
- apply_search(), search_fields(), filter_options()
"""

import pytest

from relsync.config import Settings
from relsync.core.query import RelationQueryBuilder, intersect, is_valid_pattern
from relsync.core.registry import RelationRegistry
from relsync.session import SearchSelection, SessionState


@pytest.fixture
def linked(core, records):
    """Members 1-3 linked to groups.

    member 1 -> Admins, Guests
    member 2 -> Admins, editors
    member 3 -> editors
    """
    ctx = core.new_context()
    core.synchronizer.save(ctx, "member", "groups", 1, [1, 3])
    core.synchronizer.save(ctx, "member", "groups", 2, [1, 2])
    core.synchronizer.save(ctx, "member", "groups", 3, [2])
    return core


@pytest.fixture
def list_ctx(linked):
    """Context of a member list view (relation fields registered)."""
    ctx = linked.new_context()
    linked.synchronizer.register_table(ctx, "member")
    return ctx


@pytest.fixture
def groups(linked):
    return linked.registry.resolve("member", "groups")


class TestIntersect:
    """Tests for intersect()."""

    def test_nothing_to_intersect(self):
        """No candidate sets means no filter."""
        assert intersect([]) is None

    def test_logical_and(self):
        """Candidate sets are intersected."""
        assert intersect([{1, 2, 3}, {2, 3, 4}]) == {2, 3}

    def test_empty_intersection_stays_empty(self):
        """An empty intersection is an explicit zero-match result."""
        result = intersect([{1, 2}, {3, 4}])

        assert result == set()
        assert result is not None

    def test_start_set(self):
        """A start set restricts the result."""
        assert intersect([{1, 2, 3}], start={2, 5}) == {2}
        assert intersect([], start={2, 5}) == {2, 5}


class TestFilters:
    """Tests for filter_candidates() and apply_filters()."""

    def test_filter_candidates(self, linked, groups):
        """Reference values linked to the selected related value."""
        assert linked.query.filter_candidates(groups, 1) == {1, 2}
        assert linked.query.filter_candidates(groups, 4) == set()

    def test_no_registrations(self, linked):
        """Without registered filter fields nothing is filtered."""
        session = SessionState(filters={"member": {"groups": 1}})

        assert linked.query.apply_filters(linked.new_context(), "member", session, "member") is None

    def test_no_selection(self, linked, list_ctx):
        """Registered fields without a selection filter nothing."""
        assert linked.query.apply_filters(list_ctx, "member", SessionState(), "member") is None

    def test_selection_applied(self, linked, list_ctx):
        """A selection restricts the list to linked references."""
        session = SessionState(filters={"member": {"groups": 2}})

        assert linked.query.apply_filters(list_ctx, "member", session, "member") == {2, 3}

    def test_root_ids_restrict(self, linked, list_ctx):
        """Existing root ids are intersected with the candidates."""
        session = SessionState(filters={"member": {"groups": 1}})

        assert linked.query.apply_filters(list_ctx, "member", session, "member", root_ids=[2, 3]) == {2}

    def test_explicit_empty_result(self, linked, list_ctx):
        """A selection nobody is linked to yields an empty set, not None."""
        session = SessionState(filters={"member": {"groups": 99}})

        assert linked.query.apply_filters(list_ctx, "member", session, "member") == set()

    def test_two_filters_intersected(self, linked):
        """Several active filters are combined with logical AND."""
        linked.schema.register("member", {"fields": {
            "groups": {"relation": {"type": "many-to-many", "relatedTable": "group",
                                    "relationTable": "member_group", "filter": True}},
            "also": {"relation": {"type": "many-to-many", "relatedTable": "group",
                                  "relationTable": "member_group", "filter": True}},
        }})
        linked.registry.clear()
        ctx = linked.new_context()
        linked.synchronizer.register_table(ctx, "member")

        disjoint = SessionState(filters={"member": {"groups": 3, "also": 2}})
        overlapping = SessionState(filters={"member": {"groups": 1, "also": 2}})

        assert linked.query.apply_filters(ctx, "member", disjoint, "member") == set()
        assert linked.query.apply_filters(ctx, "member", overlapping, "member") == {2}

    def test_parent_mode_filter_id(self, linked, list_ctx):
        """Selections are looked up under the list's own filter id."""
        session = SessionState(filters={"member_4": {"groups": 3}})

        assert linked.query.apply_filters(list_ctx, "member", session, "member") is None
        assert linked.query.apply_filters(list_ctx, "member", session, "member_4") == {1}


class TestSearch:
    """Tests for search()."""

    def test_case_insensitive_collation(self, linked, groups):
        """With a *_ci collation the match ignores case."""
        assert sorted(linked.query.search("member", groups, "name", "EDITORS")) == [2, 3]

    def test_case_sensitive_collation(self, linked, groups):
        """With a case-sensitive collation the match is exact."""
        linked.settings.db_collation = "utf8mb4_bin"

        assert linked.query.search("member", groups, "name", "EDITORS") == []
        assert sorted(linked.query.search("member", groups, "name", "editors")) == [2, 3]

    def test_regular_expression(self, linked, groups):
        """The keyword is a regular expression."""
        assert sorted(linked.query.search("member", groups, "name", "^(adm|gue)")) == [1, 2]

    def test_distinct_results(self, linked, groups):
        """A member matching through several groups is listed once."""
        assert sorted(linked.query.search("member", groups, "name", "s$")) == [1, 2, 3]

    def test_foreign_key_indirection(self, linked, groups):
        """A foreignKey field also matches the referenced label."""
        assert linked.query.search("member", groups, "category", "external") == [1]
        assert sorted(linked.query.search("member", groups, "category", "^staff$")) == [1, 2, 3]

    def test_foreign_key_raw_value_still_matches(self, linked, groups):
        """The raw stored value keeps matching next to the label."""
        assert linked.query.search("member", groups, "category", "^2$") == [1]

    def test_empty_keyword(self, linked, groups):
        """An empty keyword matches nothing."""
        assert linked.query.search("member", groups, "name", "") == []

    def test_empty_search_field(self, linked, groups):
        """A keyword without a search field matches nothing."""
        assert linked.query.search("member", groups, "", "adm") == []

    def test_invalid_pattern(self, linked, groups):
        """An invalid regular expression is treated as no keyword."""
        assert linked.query.search("member", groups, "name", "(unclosed") == []

    def test_search_query_shape(self, core, groups):
        """The keyword is bound once, twice with foreignKey indirection."""
        sql, params = core.query.build_search_query("member", groups, "name", "x")
        assert params == ["x"]
        assert 'INNER JOIN "member_group" j ON h."id" = j."member_id"' in sql
        assert 'LOWER(CAST(r."name" AS TEXT)) REGEXP LOWER(?)' in sql

        sql, params = core.query.build_search_query("member", groups, "category", "x")
        assert params == ["x", "x"]
        assert '(SELECT "title" FROM "category" WHERE "category"."id" = r."category")' in sql

    def test_is_valid_pattern(self):
        """is_valid_pattern() reports regular expression syntax errors."""
        assert is_valid_pattern("^adm.*")
        assert not is_valid_pattern("[a-")


class TestApplySearch:
    """Tests for apply_search()."""

    def test_no_registrations(self, linked):
        """Without registered search fields nothing is filtered."""
        session = SessionState()
        session.search["member"] = SearchSelection("groups", "group", "name", "adm")

        assert linked.query.apply_search(linked.new_context(), "member", session) is None

    def test_no_selection_or_keyword(self, linked, list_ctx):
        """No selection, or an empty keyword, filters nothing."""
        session = SessionState()
        assert linked.query.apply_search(list_ctx, "member", session) is None

        session.search["member"] = SearchSelection("groups", "group", "name", "")
        assert linked.query.apply_search(list_ctx, "member", session) is None

    def test_selection_applied(self, linked, list_ctx):
        """An active search restricts the list."""
        session = SessionState()
        session.search["member"] = SearchSelection("groups", "group", "name", "guest")

        assert linked.query.apply_search(list_ctx, "member", session) == {1}

    def test_no_match_is_empty(self, linked, list_ctx):
        """A search without matches yields an empty set."""
        session = SessionState()
        session.search["member"] = SearchSelection("groups", "group", "name", "nobody")

        assert linked.query.apply_search(list_ctx, "member", session, root_ids=[1, 2]) == set()

    def test_keyword_without_search_field(self, linked, list_ctx):
        """A selection without a search field filters nothing."""
        session = SessionState()
        session.search["member"] = SearchSelection("groups", "group", "", "adm")

        assert linked.query.apply_search(list_ctx, "member", session) is None

    def test_submitted_without_search_field(self, linked, list_ctx):
        """A form submitted with a keyword but no field leaves the list unfiltered."""
        session = SessionState()
        session.submit_search("member", "groups", "group", None, "adm", ["name", "category"])

        assert linked.query.apply_search(list_ctx, "member", session) is None

    def test_other_relation_selection_ignored(self, linked, list_ctx):
        """A selection for another related table filters nothing."""
        session = SessionState()
        session.search["member"] = SearchSelection("groups", "category", "title", "staff")

        assert linked.query.apply_search(list_ctx, "member", session) is None


class TestOptions:
    """Tests for search_fields() and filter_options()."""

    def test_search_fields(self, linked, groups):
        """Related fields flagged search, ordered by label."""
        assert linked.query.search_fields(groups) == ["category", "name"]

    def test_filter_options_values_only_from_join_table(self, linked):
        """Only related values present in the join table are offered."""
        options = linked.query.filter_options("member", "groups")

        assert [value for value, _ in options] == [1, 2, 3]
        assert [label for _, label in options] == ["1", "2", "3"]

    def test_filter_options_foreign_key_labels(self, linked):
        """foreignKey labels replace raw values and define the order."""
        linked.schema.register("member", {"fields": {"groups": {
            "foreignKey": "group.name",
            "relation": {"type": "many-to-many", "relatedTable": "group", "relationTable": "member_group"},
        }}})
        linked.registry.clear()

        assert linked.query.filter_options("member", "groups") == [
            (1, "Admins"),
            (2, "editors"),
            (3, "Guests"),
        ]

    def test_filter_options_mapping_labels(self, linked):
        """An options mapping labels the values."""
        linked.schema.register("member", {"fields": {"groups": {
            "options": {"1": "Zeta", "2": "alpha"},
            "relation": {"type": "many-to-many", "relatedTable": "group", "relationTable": "member_group"},
        }}})
        linked.registry.clear()

        assert linked.query.filter_options("member", "groups") == [(3, "3"), (2, "alpha"), (1, "Zeta")]

    def test_filter_options_without_relation(self, linked):
        """A plain field offers no options."""
        assert linked.query.filter_options("member", "name") == []


class TestStandalone:
    """Tests for RelationQueryBuilder outside RelationsCore."""

    def test_builder_uses_registry_settings(self, storage, schema, tmp_path):
        """The collation is read from the registry's settings."""
        settings = Settings(config_path=tmp_path / "missing.toml", db_collation="binary")
        registry = RelationRegistry(schema, settings)
        builder = RelationQueryBuilder(storage, registry)
        definition = registry.resolve("member", "groups")

        sql, _ = builder.build_search_query("member", definition, "name", "x")

        assert "LOWER" not in sql
