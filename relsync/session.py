"""Session-backed UI state for relation filters and search.

The list view posts filter and search forms; SessionState keeps the
sanitized selections between requests. RelationQueryBuilder only ever reads
this state.

FILTERS:
    filters[filter_id][field] = selected related value
A list in parent mode (child records of one parent) keeps its own filters
under ``<table>_<parent id>``. Submitting the reset sentinel ``tl_<field>``
or an empty value clears the field's selection.

SEARCH:
    search[table] = SearchSelection(field, table, search_field, value)
One search selection per listed table. The keyword is stored without
leading ``*`` wildcards; a search field that is not offered for the
relation, or a keyword that is not a valid regular expression, is blanked.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from .core.query import is_valid_pattern

logger = logging.getLogger(__name__)

RESET_PREFIX = "tl_"


def reset_sentinel(field_name: str) -> str:
    """Form value meaning "no selection" for a filter field."""
    return f"{RESET_PREFIX}{field_name}"


@dataclass
class SearchSelection:
    """Active relation search of one listed table."""
    field: str  # Relation field of the listed table
    table: str  # Related table searched through
    search_field: str  # Field of the related table
    value: str  # Regular expression keyword


@dataclass
class SessionState:
    """Filter and search selections of one user session."""
    filters: dict[str, dict[str, Any]] = field(default_factory=dict)
    search: dict[str, SearchSelection] = field(default_factory=dict)

    @staticmethod
    def filter_id(table: str, parent_mode: bool = False, parent_id: Any = None) -> str:
        """Session key of a list's filters.

        Examples:
            >>> SessionState.filter_id("member")
            'member'

            >>> SessionState.filter_id("member", parent_mode=True, parent_id=4)
            'member_4'
        """
        if parent_mode:
            return f"{table}_{parent_id}"
        return table

    def submit_filters(
        self,
        filter_id: str,
        fields: Iterable[str],
        form: Mapping[str, Any],
    ) -> dict[str, Any]:
        """Apply a submitted filter form.

        Args:
            filter_id: Session key of the list
            fields: Filterable relation fields of the listed table
            form: Submitted form values keyed by field name

        Returns:
            The selections now active for filter_id
        """
        selections = self.filters.setdefault(filter_id, {})

        for name in fields:
            value = form.get(name)
            if value is None or value == "" or value == reset_sentinel(name):
                selections.pop(name, None)
            else:
                selections[name] = value

        if not selections:
            del self.filters[filter_id]
            return {}
        return selections

    def submit_search(
        self,
        table: str,
        field_name: str,
        related_table: str,
        search_field: str | None,
        keyword: str | None,
        allowed_fields: Iterable[str],
    ) -> SearchSelection:
        """Apply a submitted relation search form.

        Args:
            table: Listed table
            field_name: Relation field searched through
            related_table: Related table of that relation
            search_field: Submitted field of the related table
            keyword: Submitted keyword (regular expression)
            allowed_fields: Fields of the related table offered for search

        Returns:
            The sanitized selection stored for table
        """
        search_field = search_field or ""
        keyword = (keyword or "").lstrip("*") if search_field else ""

        if search_field and search_field not in set(allowed_fields):
            logger.debug(
                "Rejected search field %s", search_field,
                extra={"table": related_table, "field": field_name},
            )
            search_field = ""
            keyword = ""

        if search_field and keyword and not is_valid_pattern(keyword):
            logger.debug(
                "Rejected invalid search pattern %r", keyword,
                extra={"table": related_table, "field": field_name},
            )
            keyword = ""

        selection = SearchSelection(
            field=field_name,
            table=related_table,
            search_field=search_field,
            value=keyword,
        )
        self.search[table] = selection
        return selection

    def clear(self) -> None:
        """Drop every filter and search selection."""
        self.filters.clear()
        self.search.clear()
