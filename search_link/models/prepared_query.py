import copy
import logging
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

MATCH_ALL = {"match_all": {}}
# bool clauses every matching document must satisfy; `must_not` and `should` are never searched
CONJUNCTIVE_CLAUSES = ("must", "filter")


def _find_nested_clause(node: Any, path: str, parent: Any = None, slot: Any = None) -> Optional[tuple]:
    if not isinstance(node, dict):
        return None
    nested = node.get("nested")
    if isinstance(nested, dict) and nested.get("path") == path and "query" in nested:
        return parent, slot, nested["query"]

    bool_query = node.get("bool")
    if not isinstance(bool_query, dict):
        return None
    for occur in CONJUNCTIVE_CLAUSES:
        clauses = bool_query.get(occur)
        if isinstance(clauses, list):
            candidates = [(clauses, index, clause) for index, clause in enumerate(clauses)]
        else:
            candidates = [(bool_query, occur, clauses)]
        for clause_parent, clause_slot, clause in candidates:
            found = _find_nested_clause(clause, path, clause_parent, clause_slot)
            if found is not None:
                return found
    return None


class PreparedQuery:
    """
    A query-DSL tree along with the paging hints that go with it.
    """

    query_dsl: Dict[str, Any]
    limit: Optional[int] = None
    offset: Optional[int] = None
    min_score: Optional[float] = None
    row_estimate: Optional[int] = None

    def __init__(self, query_dsl: Optional[Dict[str, Any]] = None, limit: Optional[int] = None,
                 offset: Optional[int] = None, min_score: Optional[float] = None,
                 row_estimate: Optional[int] = None) -> None:
        self.query_dsl = copy.deepcopy(query_dsl) if query_dsl is not None else copy.deepcopy(MATCH_ALL)
        self.limit = limit
        self.offset = offset
        self.min_score = min_score
        self.row_estimate = row_estimate

    @classmethod
    def from_query_string(cls, query: str, **kwargs) -> "PreparedQuery":
        return cls({"query_string": {"query": query}}, **kwargs)

    @classmethod
    def from_value(cls, value: Dict[str, Any]) -> "PreparedQuery":
        return cls(value.get("query_dsl"),
                   limit=value.get("limit"),
                   offset=value.get("offset"),
                   min_score=value.get("min_score"),
                   row_estimate=value.get("row_estimate"))

    def to_value(self) -> Dict[str, Any]:
        value: Dict[str, Any] = {"query_dsl": self.query_dsl}
        for key in ("limit", "offset", "min_score", "row_estimate"):
            if getattr(self, key) is not None:
                value[key] = getattr(self, key)
        return value

    def take_nested_filter(self, path: str) -> Optional[Dict[str, Any]]:
        """
        Remove the first `nested` clause scoped to `path` from this query and return its inner query.
        Only the root and clauses reached through `bool.must` or `bool.filter` are considered.

        The clause is dropped from the list holding it (e.g. a `bool.filter` array) or, if it occupies
        a single slot, replaced by `match_all`. Returns None and leaves the query untouched if there
        is no such clause.
        """
        found = _find_nested_clause(self.query_dsl, path)
        if found is None:
            return None

        parent, slot, nested_filter = found
        if parent is None:
            self.query_dsl = copy.deepcopy(MATCH_ALL)
        elif isinstance(parent, list):
            del parent[slot]
        else:
            parent[slot] = copy.deepcopy(MATCH_ALL)
        logger.debug(f"Extracted nested filter for path '{path}': {nested_filter}")
        return nested_filter

    def __eq__(self, other) -> bool:
        return isinstance(other, PreparedQuery) and self.to_value() == other.to_value()

    def __repr__(self) -> str:
        return f"PreparedQuery({self.to_value()})"
