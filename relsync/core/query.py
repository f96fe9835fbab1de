"""Read-only filter and search queries over join tables.

RelationQueryBuilder computes candidate sets of reference values that a
list view restricts itself to. It never writes.

CANDIDATE SETS:
- None means "no filter applied" (show everything)
- set() means "filter applied, zero matches"
Keeping the two apart matters when several filters are active at once:
their candidate sets are intersected (logical AND), and an empty
intersection must not fall back to an unfiltered list.

SEARCH:
    SELECT h.<reference key> FROM <host> h
    INNER JOIN <join table> j ON h.<reference key> = j.<reference column>
    INNER JOIN <related> r ON r.<related key> = j.<related column>
    WHERE <match on r.<search field>>

The keyword is a regular expression. The match is case-folded when the
configured collation is case-insensitive (``*_ci``). If the searched field
declares ``foreignKey = "table.column"``, the keyword may also match the
referenced label (one-level subquery, combined with OR). An invalid
regular expression is treated as "no keyword".
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Any, Iterable

from ..storage.clauses import qualified, quote_identifier, unique_preserving_order
from .registry import natural_key

if TYPE_CHECKING:
    from ..session import SessionState
    from ..storage import Storage
    from .context import OperationContext
    from .registry import RelationRegistry
    from .types import RelationDefinition

logger = logging.getLogger(__name__)


def is_valid_pattern(keyword: str) -> bool:
    """Whether keyword compiles as a regular expression."""
    try:
        re.compile(keyword)
    except (re.error, TypeError):
        return False
    return True


def intersect(candidate_sets: Iterable[Iterable[Any]], start: set | None = None) -> set | None:
    """Intersect candidate sets (logical AND).

    Args:
        candidate_sets: Candidate sets of simultaneously active filters
        start: Optional pre-existing restriction (None = unrestricted)

    Returns:
        None when there was nothing to intersect and no start set,
        otherwise the intersection (possibly empty)

    Examples:
        >>> intersect([{1, 2, 3}, {2, 3, 4}])
        {2, 3}

        >>> intersect([{1, 2}, {3, 4}])
        set()

        >>> intersect([]) is None
        True
    """
    result = set(start) if start is not None else None
    for candidates in candidate_sets:
        candidates = set(candidates)
        result = candidates if result is None else result & candidates
    return result


class RelationQueryBuilder:
    """Filter and search candidate sets for list views."""

    def __init__(self, storage: "Storage", registry: "RelationRegistry"):
        self._storage = storage
        self._registry = registry

    @property
    def _case_insensitive(self) -> bool:
        return self._registry.settings.case_insensitive_collation

    # ==========================================================================
    # FILTERS
    # ==========================================================================

    def filter_candidates(self, definition: "RelationDefinition", selected_value: Any) -> set:
        """Reference values linked to the selected related value."""
        return set(self._storage.fetch_column(
            definition.join_table,
            definition.reference_column_in_join,
            {definition.related_column_in_join: selected_value},
            distinct=True,
        ))

    def apply_filters(
        self,
        ctx: "OperationContext",
        table: str,
        session: "SessionState",
        filter_id: str,
        root_ids: Iterable[Any] | None = None,
    ) -> set | None:
        """Restrict a list view by the active relation filters.

        Args:
            ctx: Current operation (filterable fields of table)
            table: Listed table
            session: UI state holding filter selections
            filter_id: Session key of the list (see SessionState.filter_id)
            root_ids: Existing restriction of the list, if any

        Returns:
            None if no relation filter is active, otherwise the candidate set
        """
        filterable = ctx.filterable(table)
        if not filterable:
            return None

        selections = session.filters.get(filter_id, {})
        candidate_sets = [
            self.filter_candidates(definition, selections[field])
            for field, definition in filterable.items()
            if field in selections
        ]
        if not candidate_sets:
            return None

        start = set(root_ids) if root_ids else None
        return intersect(candidate_sets, start)

    def filter_options(self, table: str, field: str) -> list[tuple[Any, str]]:
        """Selectable values of a relation filter with their labels.

        Only values present in the join table are offered. Labels come from
        the field's ``foreignKey`` lookup, then its ``options`` mapping, then
        the value itself.

        Returns:
            (value, label) pairs sorted by label
        """
        definition = self._registry.resolve(table, field)
        if definition is None:
            return []

        config = self._registry.schema.field(table, field) or {}
        values = self._storage.fetch_column(
            definition.join_table, definition.related_column_in_join, distinct=True
        )

        options = [(value, self._option_label(config, value)) for value in values]
        return sorted(options, key=lambda option: natural_key(option[1]))

    def _option_label(self, config: dict, value: Any) -> str:
        foreign_key = config.get("foreignKey")
        if foreign_key and "." in foreign_key:
            label_table, label_column = foreign_key.split(".", 1)
            label = self._storage.fetch_value(label_table, label_column, {"id": value})
            if label is not None:
                return str(label)

        choices = config.get("options")
        if isinstance(choices, dict):
            label = choices.get(str(value), choices.get(value))
            if label:
                return str(label)

        return str(value) if value not in (None, "") else "-"

    # ==========================================================================
    # SEARCH
    # ==========================================================================

    def search_fields(self, definition: "RelationDefinition") -> list[str]:
        """Fields of the related table offered for relation search."""
        fields = self._registry.schema.fields(definition.related_table)
        searchable = [
            (config.get("label") or name, name)
            for name, config in fields.items()
            if isinstance(config, dict) and config.get("search") is True
        ]
        return [name for _, name in sorted(searchable, key=lambda item: natural_key(f"{item[0]}_{item[1]}"))]

    def search(
        self,
        host_table: str,
        definition: "RelationDefinition",
        search_field: str,
        keyword: str,
    ) -> list[Any]:
        """Reference values of host records whose related records match keyword.

        Args:
            host_table: Listed table (reference side)
            definition: Relation being searched through
            search_field: Field of the related table to match
            keyword: Regular expression

        Returns:
            Matching reference values (distinct, first-seen order); empty
            for an empty search field or an empty or invalid keyword
        """
        if not search_field or not keyword:
            return []
        if not is_valid_pattern(keyword):
            logger.debug(
                "Ignoring invalid search pattern %r", keyword,
                extra={"table": definition.related_table, "field": search_field},
            )
            return []

        sql, params = self.build_search_query(host_table, definition, search_field, keyword)
        rows = self._storage.query(sql, params)
        return unique_preserving_order(row["source_id"] for row in rows)

    def build_search_query(
        self,
        host_table: str,
        definition: "RelationDefinition",
        search_field: str,
        keyword: str,
    ) -> tuple[str, list[Any]]:
        """Build the search SQL and its parameters (see module docstring)."""
        host = quote_identifier(host_table)
        join = quote_identifier(definition.join_table)
        related = quote_identifier(definition.related_table)
        reference_key = quote_identifier(definition.reference_key_field)
        related_key = quote_identifier(definition.related_key_field)

        sql = (
            f"SELECT h.{reference_key} AS source_id FROM {host} h "
            f"INNER JOIN {join} j ON h.{reference_key} = j.{quote_identifier(definition.reference_column_in_join)} "
            f"INNER JOIN {related} r ON r.{related_key} = j.{quote_identifier(definition.related_column_in_join)}"
        )

        searched = f"r.{quote_identifier(search_field)}"
        condition = self._match(searched)
        params = [keyword]

        field_config = self._registry.schema.field(definition.related_table, search_field) or {}
        foreign_key = field_config.get("foreignKey")
        if foreign_key and "." in foreign_key:
            label_table, label_column = foreign_key.split(".", 1)
            subquery = (
                f"(SELECT {quote_identifier(label_column)} FROM {quote_identifier(label_table)} "
                f"WHERE {qualified(label_table, 'id')} = {searched})"
            )
            condition = f"({condition} OR {self._match(subquery)})"
            params.append(keyword)

        return f"{sql} WHERE {condition}", params

    def _match(self, expression: str) -> str:
        if self._case_insensitive:
            return f"LOWER(CAST({expression} AS TEXT)) REGEXP LOWER(?)"
        return f"CAST({expression} AS TEXT) REGEXP ?"

    def apply_search(
        self,
        ctx: "OperationContext",
        table: str,
        session: "SessionState",
        root_ids: Iterable[Any] | None = None,
    ) -> set | None:
        """Restrict a list view by the active relation search.

        Returns:
            None if no relation search is active (no selection, empty
            search field or empty keyword), otherwise the candidate set
        """
        searchable = ctx.searchable(table)
        if not searchable:
            return None

        selection = session.search.get(table)
        if selection is None or not selection.search_field or not selection.value:
            return None

        candidate_sets = [
            self.search(table, definition, selection.search_field, selection.value)
            for field, definition in searchable.items()
            if field == selection.field and definition.related_table == selection.table
        ]
        if not candidate_sets:
            return None

        start = set(root_ids) if root_ids else None
        return intersect(candidate_sets, start)
