"""
Structural walker.

Builds the structural model the formatter renders from. The walker is a
non-validating recursive-descent pass over the tokens of one statement:

1. Parentheses are grouped into PAREN_GROUP nodes, each tagged with why it was
   opened (subselect, grouping, function call or tuple).
2. CASE ... END runs are grouped into CASE nodes with one branch per WHEN/ELSE.
3. The top-level verb decides how the remaining elements are split into
   clauses, comma lists and AND/OR chains. Nested subselects are walked
   recursively.

Anything the walker does not recognize is kept as a RAW node so it can be
passed through with only whitespace normalized. Unbalanced parentheses make the
whole statement RAW.
"""

import logging
from typing import FrozenSet, List, Optional, Sequence, Tuple

from .keywords import GROUPING_FUNCTIONS, KeywordRegistry, get_registry
from .models import (
    Condition,
    Element,
    FormattingContext,
    Node,
    NodeKind,
    ParenKind,
    Token,
    TokenKind,
)

logger = logging.getLogger(__name__)


class StructureError(ValueError):
    """The statement cannot be modelled; callers fall back to passthrough."""


# ============================================================================
# Clause Keywords
# ============================================================================

SET_OPERATORS: FrozenSet[str] = frozenset(
    {
        "UNION",
        "UNION ALL",
        "UNION DISTINCT",
        "INTERSECT",
        "INTERSECT ALL",
        "EXCEPT",
        "EXCEPT ALL",
        "MINUS",
        "MINUS ALL",
    }
)

QUERY_CLAUSES: FrozenSet[str] = SET_OPERATORS | frozenset(
    {
        "SELECT",
        "FROM",
        "WHERE",
        "GROUP BY",
        "HAVING",
        "ORDER BY",
        "ORDER SIBLINGS BY",
        "WINDOW",
        "QUALIFY",
        "LIMIT",
        "OFFSET",
        "FETCH",
        "INTO",
        "START WITH",
        "CONNECT BY",
        "FOR",
        "RETURNING",
    }
)

UPDATE_CLAUSES: FrozenSet[str] = QUERY_CLAUSES | frozenset({"SET"})

# Clauses whose body is an AND/OR chain
PREDICATE_CLAUSES: FrozenSet[str] = frozenset({"WHERE", "HAVING", "START WITH", "CONNECT BY", "QUALIFY"})

# Clauses whose body is a comma list
LIST_CLAUSES: FrozenSet[str] = frozenset({"GROUP BY", "ORDER BY", "ORDER SIBLINGS BY", "SET"})

SELECT_MODIFIERS: FrozenSet[str] = frozenset({"DISTINCT", "ALL", "UNIQUE"})

QUERY_START: FrozenSet[str] = frozenset({"SELECT", "WITH"})


def is_join_keyword(token: Token) -> bool:
    """True for JOIN, every multi-word join and CROSS/OUTER APPLY."""
    if not token.is_reserved and token.text.upper() != "STRAIGHT_JOIN":
        return False
    contents = token.contents.upper()
    return (
        contents == "JOIN"
        or contents.endswith(" JOIN")
        or contents.endswith(" APPLY")
        or contents == "STRAIGHT_JOIN"
    )


def _is_word(element: Optional[Element], *words: str) -> bool:
    return isinstance(element, Token) and element.matches(*words)


def _is_comma(element: Optional[Element]) -> bool:
    return isinstance(element, Token) and element.kind is TokenKind.COMMA


def _is_paren_group(element: Optional[Element]) -> bool:
    return isinstance(element, Node) and element.kind is NodeKind.PAREN_GROUP


def _first_significant(elements: Sequence[Element]) -> Optional[Element]:
    for element in elements:
        if isinstance(element, Token) and element.is_comment:
            continue
        return element
    return None


def _peel_comments(elements: List[Element]) -> Tuple[List[Token], List[Element], List[Token]]:
    """Split leading and trailing comment tokens off an element run."""
    start = 0
    while start < len(elements) and isinstance(elements[start], Token) and elements[start].is_comment:
        start += 1
    end = len(elements)
    while end > start and isinstance(elements[end - 1], Token) and elements[end - 1].is_comment:
        end -= 1
    return list(elements[:start]), list(elements[start:end]), list(elements[end:])


class StructuralWalker:
    """
    Turns the tokens of one statement into a tree of Nodes.

    Example:
        walker = StructuralWalker()
        node = walker.walk(tokenize("select a, b from t where x = 1"))
        node.kind  # NodeKind.SELECT
        [c.keyword.contents for c in node.children]  # ["SELECT", "FROM", "WHERE"]
    """

    def __init__(
        self,
        registry: Optional[KeywordRegistry] = None,
        additional_functions: FrozenSet[str] = frozenset(),
    ):
        self.registry = registry or get_registry()
        self.additional_functions = additional_functions
        self.context = FormattingContext()

    def walk(self, tokens: Sequence[Token]) -> Node:
        """
        Build the structural model for one statement.

        Whitespace tokens and a trailing semicolon are dropped; comments are
        kept as elements. Never raises for malformed SQL: unbalanced
        parentheses yield a RAW node holding every significant token.

        Args:
            tokens: Tokens of a single statement (a TokenStream slice)

        Returns:
            Root Node of the statement
        """
        significant = [token for token in tokens if not token.is_whitespace]
        while significant and significant[-1].kind is TokenKind.SEMICOLON:
            significant.pop()

        self.context = FormattingContext()
        try:
            elements = self._group(significant)
            return self._parse_statement(elements)
        except StructureError as e:
            logger.debug("Passing statement through unformatted: %s", e)
            return Node(kind=NodeKind.RAW, elements=list(significant))

    # ========================================================================
    # Grouping
    # ========================================================================

    def _group(self, tokens: List[Token]) -> List[Element]:
        root: List[Element] = []
        stack: List[Tuple[Token, List[Element]]] = []
        current = root
        for token in tokens:
            if token.kind is TokenKind.PAREN_OPEN:
                stack.append((token, current))
                self.context.paren_stack.append(ParenKind.GROUPING)
                current = []
            elif token.kind is TokenKind.PAREN_CLOSE:
                if not stack:
                    raise StructureError(f"Unbalanced ')' at offset {token.start}")
                opening, parent = stack.pop()
                self.context.paren_stack.pop()
                parent.append(self._make_paren_group(opening, current, token, parent))
                current = parent
            else:
                current.append(token)
        if stack:
            raise StructureError(f"Unclosed '(' at offset {stack[-1][0].start}")
        return self._group_case(root)

    def _make_paren_group(
        self, opening: Token, content: List[Element], closing: Token, parent: List[Element]
    ) -> Node:
        content = self._group_case(content)
        depth = self.context.depth
        first = _first_significant(content)

        if isinstance(first, Token) and first.matches(*QUERY_START):
            self.context.paren_stack.append(ParenKind.SUBSELECT)
            try:
                body = self._parse_statement(content)
            finally:
                self.context.paren_stack.pop()
            return Node(
                kind=NodeKind.PAREN_GROUP,
                keyword=opening,
                closing=closing,
                body=body,
                role=ParenKind.SUBSELECT,
                depth=depth,
            )

        previous = parent[-1] if parent else None
        if self._is_function_name(previous):
            role = ParenKind.FUNCTION_CALL
        elif any(_is_comma(element) for element in content):
            role = ParenKind.TUPLE
        else:
            role = ParenKind.GROUPING
        return Node(
            kind=NodeKind.PAREN_GROUP,
            keyword=opening,
            closing=closing,
            elements=content,
            role=role,
            depth=depth,
        )

    def _is_function_name(self, element: Optional[Element]) -> bool:
        if not isinstance(element, Token):
            return False
        if element.kind in (TokenKind.IDENTIFIER, TokenKind.QUOTED_IDENTIFIER):
            return True
        if not element.is_reserved:
            return False
        if element.contents in GROUPING_FUNCTIONS:
            return True
        return self.registry.is_function(element.contents, self.additional_functions) or self.registry.is_data_type(
            element.contents
        )

    def _group_case(self, elements: List[Element]) -> List[Element]:
        result: List[Element] = []
        index = 0
        while index < len(elements):
            element = elements[index]
            if _is_word(element, "CASE"):
                end = self._find_case_end(elements, index)
                if end is not None:
                    result.append(self._make_case(elements[index : end + 1]))
                    index = end + 1
                    continue
                logger.debug("CASE without END at offset %d", element.start)
            result.append(element)
            index += 1
        return result

    @staticmethod
    def _find_case_end(elements: List[Element], start: int) -> Optional[int]:
        depth = 0
        for index in range(start, len(elements)):
            if _is_word(elements[index], "CASE"):
                depth += 1
            elif _is_word(elements[index], "END"):
                depth -= 1
                if depth == 0:
                    return index
        return None

    def _make_case(self, run: List[Element]) -> Node:
        node = Node(kind=NodeKind.CASE, keyword=run[0], closing=run[-1], depth=self.context.depth)
        branch: Optional[Node] = None
        for element in self._group_case(run[1:-1]):
            if _is_word(element, "WHEN", "ELSE"):
                branch = Node(kind=NodeKind.CLAUSE, keyword=element)
                node.children.append(branch)
            elif branch is None:
                node.elements.append(element)
            else:
                branch.elements.append(element)
        return node

    # ========================================================================
    # Statements
    # ========================================================================

    def _parse_statement(self, elements: List[Element]) -> Node:
        leading, body, trailing = _peel_comments(elements)
        node = self._dispatch(body)
        node.leading_comments = leading + node.leading_comments
        node.trailing_comments.extend(trailing)
        return node

    def _dispatch(self, elements: List[Element]) -> Node:
        if not elements:
            return Node(kind=NodeKind.RAW)

        first = elements[0]
        if isinstance(first, Token) and first.is_reserved:
            verb = first.contents
            if verb == "WITH":
                return self._parse_cte(elements)
            if verb == "SELECT":
                return self._parse_query(elements)
            if verb == "INSERT":
                return self._parse_insert(elements)
            if verb == "UPDATE":
                return self._parse_update(elements)
            if verb == "DELETE":
                return self._parse_delete(elements)
            if verb == "MERGE":
                return self._parse_merge(elements)
            if verb in ("CREATE", "CREATE OR REPLACE"):
                return self._parse_create(elements)
            if verb in ("GRANT", "REVOKE"):
                return self._parse_grant(elements)
        elif isinstance(first, Node) and first.is_subselect:
            return self._parse_query(elements)

        return Node(kind=NodeKind.RAW, elements=list(elements))

    def _parse_query(self, elements: List[Element]) -> Node:
        return Node(kind=NodeKind.SELECT, children=self._split_clauses(elements, QUERY_CLAUSES))

    def _parse_cte(self, elements: List[Element]) -> Node:
        node = Node(kind=NodeKind.CTE, keyword=elements[0])
        index = 1
        if index < len(elements) and _is_word(elements[index], "RECURSIVE"):
            node.elements.append(elements[index])
            index += 1

        while index < len(elements):
            head: List[Element] = []
            while index < len(elements) and not _is_word(elements[index], "AS"):
                head.append(elements[index])
                index += 1
            if index >= len(elements):
                raise StructureError("CTE definition without AS")
            definition = Node(kind=NodeKind.CLAUSE, keyword=elements[index], elements=head)
            index += 1

            # AS [NOT] MATERIALIZED modifiers
            modifiers: List[Element] = []
            while (
                index < len(elements)
                and isinstance(elements[index], Token)
                and elements[index].text.upper() in ("NOT", "MATERIALIZED")
            ):
                modifiers.append(elements[index])
                index += 1
            if modifiers:
                definition.items = [modifiers]

            if index >= len(elements) or not _is_paren_group(elements[index]):
                raise StructureError("CTE definition without a parenthesized query")
            definition.body = elements[index]
            index += 1

            for element in head:
                if _is_paren_group(element):
                    element.role = ParenKind.TUPLE
                    element.items = self._split_items(element.elements)
            node.children.append(definition)

            if index < len(elements) and _is_comma(elements[index]):
                node.separators.append(elements[index])
                index += 1
                continue
            break

        node.body = self._parse_statement(elements[index:])
        return node

    def _parse_insert(self, elements: List[Element]) -> Node:
        node = Node(kind=NodeKind.INSERT, keyword=elements[0])
        index = 1
        while index < len(elements):
            element = elements[index]
            if _is_paren_group(element) or _is_word(element, "VALUES", "SELECT", "WITH", "DEFAULT"):
                break
            node.elements.append(element)
            index += 1

        if index < len(elements) and _is_paren_group(elements[index]) and not elements[index].is_subselect:
            columns = elements[index]
            columns.role = ParenKind.TUPLE
            columns.items = self._split_items(columns.elements)
            node.children.append(columns)
            index += 1

        rest = elements[index:]
        if rest and _is_word(rest[0], "VALUES"):
            values = Node(kind=NodeKind.CLAUSE, keyword=rest[0])
            end = 1
            while end < len(rest) and not (isinstance(rest[end], Token) and rest[end].is_reserved):
                end += 1
            values.items = self._split_items(rest[1:end], values.separators)
            for item in values.items:
                for element in item:
                    if _is_paren_group(element) and not element.is_subselect:
                        element.role = ParenKind.TUPLE
                        element.items = self._split_items(element.elements)
            node.children.append(values)
            if end < len(rest):
                node.children.append(self._tail_clause(rest[end:]))
        elif rest:
            node.body = self._parse_statement(rest)
        return node

    def _parse_update(self, elements: List[Element]) -> Node:
        node = Node(kind=NodeKind.UPDATE, keyword=elements[0])
        index = 1
        while index < len(elements) and not _is_word(elements[index], "SET"):
            node.elements.append(elements[index])
            index += 1
        if index >= len(elements):
            return Node(kind=NodeKind.RAW, elements=list(elements))
        node.children = self._split_clauses(elements[index:], UPDATE_CLAUSES)
        return node

    def _parse_delete(self, elements: List[Element]) -> Node:
        node = Node(kind=NodeKind.DELETE, keyword=elements[0])
        index = 1
        if index < len(elements) and _is_word(elements[index], "FROM"):
            node.elements.append(elements[index])
            index += 1
        while index < len(elements) and not self._opens_clause(elements, index, QUERY_CLAUSES, True):
            node.elements.append(elements[index])
            index += 1
        node.children = self._split_clauses(elements[index:], QUERY_CLAUSES)
        return node

    def _parse_merge(self, elements: List[Element]) -> Node:
        node = Node(kind=NodeKind.MERGE, keyword=elements[0])
        index = 1
        while index < len(elements) and not _is_word(elements[index], "USING"):
            node.elements.append(elements[index])
            index += 1
        if index >= len(elements):
            return Node(kind=NodeKind.RAW, elements=list(elements))

        using = Node(kind=NodeKind.CLAUSE, keyword=elements[index])
        index += 1
        source: List[Element] = []
        while index < len(elements) and not _is_word(elements[index], "ON", "WHEN"):
            source.append(elements[index])
            index += 1
        using.items = [source]
        if index < len(elements) and _is_word(elements[index], "ON"):
            on_token = elements[index]
            index += 1
            predicate: List[Element] = []
            while index < len(elements) and not _is_word(elements[index], "WHEN"):
                predicate.append(elements[index])
                index += 1
            using.conditions = self._split_conditions(predicate) or [Condition(None)]
            using.conditions[0].connector = on_token
        node.children.append(using)

        while index < len(elements):
            if not _is_word(elements[index], "WHEN"):
                raise StructureError("MERGE branch does not start with WHEN")
            branch = Node(kind=NodeKind.CLAUSE, keyword=elements[index])
            index += 1
            while index < len(elements) and not _is_word(elements[index], "THEN"):
                branch.elements.append(elements[index])
                index += 1
            if index < len(elements):
                branch.elements.append(elements[index])
                index += 1
            action: List[Element] = []
            while index < len(elements) and not _is_word(elements[index], "WHEN"):
                action.append(elements[index])
                index += 1
            branch.body = self._parse_merge_action(action)
            node.children.append(branch)
        return node

    def _parse_merge_action(self, elements: List[Element]) -> Node:
        if elements and _is_word(elements[0], "UPDATE"):
            node = Node(kind=NodeKind.UPDATE, keyword=elements[0])
            node.children = self._split_clauses(elements[1:], UPDATE_CLAUSES | {"DELETE"})
            return node
        if elements and _is_word(elements[0], "INSERT"):
            return self._parse_insert(elements)
        return Node(kind=NodeKind.RAW, elements=list(elements))

    def _parse_create(self, elements: List[Element]) -> Node:
        node = Node(kind=NodeKind.CREATE, keyword=elements[0])
        index = 1
        while index < len(elements) and not (_is_word(elements[index], "AS") or _is_paren_group(elements[index])):
            node.elements.append(elements[index])
            index += 1

        object_words = {e.contents for e in node.elements if isinstance(e, Token) and e.is_reserved}
        if not object_words & {"TABLE", "VIEW", "MATERIALIZED VIEW"}:
            return Node(kind=NodeKind.RAW, elements=list(elements))

        if index < len(elements) and _is_paren_group(elements[index]) and not elements[index].is_subselect:
            definitions = elements[index]
            definitions.role = ParenKind.TUPLE
            definitions.items = self._split_items(definitions.elements)
            node.children.append(definitions)
            index += 1

        if index < len(elements) and _is_word(elements[index], "AS"):
            query = Node(kind=NodeKind.CLAUSE, keyword=elements[index])
            query.body = self._parse_statement(elements[index + 1 :])
            node.children.append(query)
        elif index < len(elements):
            node.children.append(Node(kind=NodeKind.CLAUSE, elements=elements[index:]))
        return node

    def _parse_grant(self, elements: List[Element]) -> Node:
        node = Node(kind=NodeKind.GRANT, keyword=elements[0])
        current = node
        for element in elements[1:]:
            if _is_word(element, "ON", "TO", "FROM"):
                current = Node(kind=NodeKind.CLAUSE, keyword=element)
                node.children.append(current)
                continue
            current.elements.append(element)
        return node

    def _tail_clause(self, elements: List[Element]) -> Node:
        first = elements[0]
        if isinstance(first, Token) and first.is_reserved:
            return Node(kind=NodeKind.CLAUSE, keyword=first, elements=elements[1:])
        return Node(kind=NodeKind.CLAUSE, elements=elements)

    # ========================================================================
    # Clauses
    # ========================================================================

    def _opens_clause(self, elements: List[Element], index: int, keywords: FrozenSet[str], started: bool) -> bool:
        element = elements[index]
        if not isinstance(element, Token) or not element.is_reserved:
            return False
        if element.contents in keywords:
            return True
        if element.contents == "WITH" and started:
            # Trailing WITH CHECK OPTION / WITH READ ONLY, but not WITH (NOLOCK) or WITH TIES
            following = elements[index + 1] if index + 1 < len(elements) else None
            if following is None or isinstance(following, Node):
                return False
            return following.text.upper() != "TIES"
        return False

    def _split_clauses(self, elements: List[Element], keywords: FrozenSet[str]) -> List[Node]:
        clauses: List[Node] = []
        current: Optional[Node] = None
        for index, element in enumerate(elements):
            if self._opens_clause(elements, index, keywords, current is not None):
                current = Node(kind=NodeKind.CLAUSE, keyword=element)
                clauses.append(current)
                continue
            if current is None:
                current = Node(kind=NodeKind.CLAUSE)
                clauses.append(current)
            current.elements.append(element)

        for clause in clauses:
            self._shape_clause(clause)
        return clauses

    def _shape_clause(self, clause: Node) -> None:
        keyword = clause.keyword.contents if clause.keyword is not None else None
        self.context.clause = keyword
        if keyword == "SELECT":
            modifiers, rest = self._split_select_modifiers(clause.elements)
            clause.elements = modifiers
            clause.items = self._split_items(rest, clause.separators)
        elif keyword == "FROM":
            self._shape_from(clause)
        elif keyword in PREDICATE_CLAUSES:
            clause.conditions = self._split_conditions(clause.elements)
            clause.elements = []
        elif keyword in LIST_CLAUSES:
            clause.items = self._split_items(clause.elements, clause.separators)
            clause.elements = []

    @staticmethod
    def _split_select_modifiers(elements: List[Element]) -> Tuple[List[Element], List[Element]]:
        modifiers: List[Element] = []
        index = 0
        while index < len(elements):
            element = elements[index]
            following = elements[index + 1] if index + 1 < len(elements) else None
            if _is_word(element, *SELECT_MODIFIERS):
                modifiers.append(element)
                index += 1
                # DISTINCT ON (expr)
                if _is_word(following, "ON") and index + 1 < len(elements) and _is_paren_group(elements[index + 1]):
                    modifiers.extend(elements[index : index + 2])
                    index += 2
            elif (
                isinstance(element, Token)
                and element.text.upper() == "TOP"
                and (
                    _is_paren_group(following)
                    or (isinstance(following, Token) and following.kind in (TokenKind.NUMBER_LITERAL, TokenKind.PLACEHOLDER))
                )
            ):
                modifiers.extend((element, following))
                index += 2
                while index < len(elements) and isinstance(elements[index], Token):
                    word = elements[index].text.upper()
                    if word == "PERCENT":
                        modifiers.append(elements[index])
                        index += 1
                    elif word == "WITH" and index + 1 < len(elements) and _is_word_text(elements[index + 1], "TIES"):
                        modifiers.extend(elements[index : index + 2])
                        index += 2
                    else:
                        break
            else:
                break
        return modifiers, elements[index:]

    def _shape_from(self, clause: Node) -> None:
        sources: List[Element] = []
        joins: List[Node] = []
        for element in clause.elements:
            if isinstance(element, Token) and is_join_keyword(element):
                joins.append(Node(kind=NodeKind.JOIN, keyword=element))
            elif joins:
                joins[-1].elements.append(element)
            else:
                sources.append(element)
        clause.items = self._split_items(sources, clause.separators)
        clause.elements = []
        for join in joins:
            self._shape_join(join)
        clause.children = joins

    def _shape_join(self, join: Node) -> None:
        elements = join.elements
        join.elements = []
        for index, element in enumerate(elements):
            if _is_word(element, "ON"):
                join.items = [elements[:index]]
                join.conditions = self._split_conditions(elements[index + 1 :]) or [Condition(None)]
                join.conditions[0].connector = element
                return
            if _is_word(element, "USING"):
                join.items = [elements[:index]]
                join.elements = elements[index:]
                return
        join.items = [elements]

    @staticmethod
    def _split_items(
        elements: Sequence[Element], separators: Optional[List[Token]] = None
    ) -> List[List[Element]]:
        """
        Split at depth-0 commas; a line comment before a comma moves to the next item.

        The commas themselves are appended to `separators` when given.
        """
        if not elements:
            return []
        items: List[List[Element]] = [[]]
        for element in elements:
            if _is_comma(element):
                items.append([])
                if separators is not None:
                    separators.append(element)
            else:
                items[-1].append(element)
        for index in range(len(items) - 1):
            while items[index] and isinstance(items[index][-1], Token) and items[index][-1].is_line_comment:
                items[index + 1].insert(0, items[index].pop())
        return items

    @staticmethod
    def _split_conditions(elements: Sequence[Element]) -> List[Condition]:
        """Split at depth-0 AND/OR, keeping the AND of BETWEEN x AND y inside its conjunct."""
        if not elements:
            return []
        conditions = [Condition(None)]
        pending_between = False
        for element in elements:
            if _is_word(element, "AND", "OR"):
                if pending_between and element.contents == "AND":
                    pending_between = False
                else:
                    conditions.append(Condition(element))
                    continue
            elif _is_word(element, "BETWEEN"):
                pending_between = True
            conditions[-1].elements.append(element)
        return conditions


def _is_word_text(element: Optional[Element], word: str) -> bool:
    return isinstance(element, Token) and element.text.upper() == word


__all__ = [
    "StructureError",
    "StructuralWalker",
    "SET_OPERATORS",
    "QUERY_CLAUSES",
    "PREDICATE_CLAUSES",
    "LIST_CLAUSES",
    "is_join_keyword",
]
