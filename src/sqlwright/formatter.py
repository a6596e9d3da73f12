"""
SQL formatter.

Lexes the input, splits it into statements, walks each statement into a
structural tree and renders the tree with the layout rules of a StyleConfig.

Example:
    from sqlwright import SqlFormatter, StyleConfig, format_sql

    format_sql("select a,b from t where x=1 and y=2")
    # SELECT a,
    #        b
    # FROM t
    # WHERE x = 1
    # AND   y = 2

    formatter = SqlFormatter(StyleConfig(max_columns_select=5), dialect="tsql")
    formatter.format("select top 10 [id], name from dbo.users")
"""

import logging
from typing import Dict, List, Mapping, Optional, Sequence, Set, Union

from .config import JoinWrapStyle, KeywordCase, StyleConfig
from .keywords import OPERAND_KEYWORDS, KeywordRegistry, get_registry
from .lexer import SQLLexer
from .models import (
    Condition,
    Element,
    FormattingContext,
    Node,
    NodeKind,
    ParenKind,
    Token,
    TokenKind,
    TokenStream,
)
from .walker import PREDICATE_CLAUSES, SET_OPERATORS, StructuralWalker, StructureError

logger = logging.getLogger(__name__)

_COMMA = Token(TokenKind.COMMA, ",", -1)
_OPEN = Token(TokenKind.PAREN_OPEN, "(", -1)
_CLOSE = Token(TokenKind.PAREN_CLOSE, ")", -1)

_CAST_FUNCTIONS = frozenset({"CAST", "TRY_CAST", "SAFE_CAST", "CONVERT"})
_UNARY_OPERATORS = frozenset({"-", "+", "~"})
_LIST_CLAUSES = frozenset({"GROUP BY", "ORDER BY", "ORDER SIBLINGS BY"})
_WORD_KINDS = frozenset({TokenKind.IDENTIFIER, TokenKind.RESERVED_WORD})


def _is_word(element: Optional[Element], *words: str) -> bool:
    return isinstance(element, Token) and element.matches(*words)


def _is_paren_group(element: Optional[Element]) -> bool:
    return isinstance(element, Node) and element.kind is NodeKind.PAREN_GROUP


def _split_arguments(elements: Sequence[Element]) -> List[List[Element]]:
    arguments: List[List[Element]] = [[]]
    for element in elements:
        if isinstance(element, Token) and element.kind is TokenKind.COMMA:
            arguments.append([])
        else:
            arguments[-1].append(element)
    return arguments


def _plain_text(elements: Sequence[Element]) -> str:
    parts: List[str] = []
    for element in elements:
        tokens = [element] if isinstance(element, Token) else list(element.tokens())
        parts.extend(token.text for token in tokens if not token.is_comment)
    return " ".join(parts)


# ============================================================================
# Line Writer
# ============================================================================


class _Writer:
    """
    Accumulates output text and tracks the column.

    Spaces and line breaks are deferred until the next write, so the output
    never ends a line with whitespace and repeated newline() calls collapse.
    In inline mode every line break becomes a single space; a line comment
    marks the rendering as broken.
    """

    def __init__(self, inline: bool = False):
        self.context = FormattingContext()
        self.inline = inline
        self.broken = False
        self.last: Optional[Token] = None
        self.last_unary = False
        self._parts: List[str] = []
        self._pending_spaces = 0
        self._pending_break = False
        self._line_has_content = False
        self._break_indent: Optional[int] = None

    @property
    def column(self) -> int:
        return self.context.column

    @property
    def line_indent(self) -> int:
        return self.context.indent

    @property
    def in_list_parens(self) -> bool:
        stack = self.context.paren_stack
        return bool(stack) and stack[-1] is not ParenKind.SUBSELECT

    def write(self, text: str) -> None:
        if not text:
            return
        if self._break_indent is not None:
            self.newline(self._break_indent)
        if self._pending_break:
            self._parts.append("\n")
            self._pending_break = False
        if self._pending_spaces:
            self._parts.append(" " * self._pending_spaces)
            self.context.column += self._pending_spaces
            self._pending_spaces = 0
        self._parts.append(text)
        if "\n" in text:
            self.context.column = len(text) - text.rfind("\n") - 1
            if self.inline:
                self.broken = True
        else:
            self.context.column += len(text)
        self._line_has_content = True

    def space(self, count: int = 1) -> None:
        if self._line_has_content:
            self._pending_spaces = max(self._pending_spaces, count)

    def pad_to(self, column: int) -> None:
        if self.inline:
            self.space()
        elif self._line_has_content and column > self.column:
            self._pending_spaces = column - self.column

    def newline(self, indent: int = 0) -> None:
        self._break_indent = None
        if self.inline:
            self.space()
            return
        if self._line_has_content:
            self._pending_break = True
            self._line_has_content = False
            self.context.column = 0
        self._pending_spaces = indent
        self.context.indent = indent

    def terminate(self, text: str) -> None:
        """Write a statement terminator; after a line comment it goes on its own line."""
        if self._break_indent is not None:
            self.newline(0)
        self.write(text)

    def end_line_after_comment(self, indent: int) -> None:
        """Force a line break before whatever is written next."""
        if self.inline:
            self.broken = True
        self._break_indent = indent

    def text(self) -> str:
        return "".join(self._parts)


# ============================================================================
# Renderer
# ============================================================================


class _Renderer:
    """Renders one statement tree; created per call so nothing is shared."""

    def __init__(
        self,
        style: StyleConfig,
        registry: KeywordRegistry,
        max_line_width: int,
        line_starts: Set[int],
    ):
        self.style = style
        self.registry = registry
        self.max_line_width = max_line_width
        self.line_starts = line_starts
        self.separators = {".", style.catalog_separator_char}

    def render(self, node: Node, terminator: Optional[Token] = None) -> str:
        writer = _Writer()
        self.statement(node, writer, 0)
        if terminator is not None:
            writer.terminate(terminator.text)
        return writer.text()

    # ------------------------------------------------------------------------
    # Statements
    # ------------------------------------------------------------------------

    def statement(self, node: Node, w: _Writer, base: int) -> None:
        for comment in node.leading_comments:
            self.comment(comment, w, base)
            w.newline(base)

        handler = {
            NodeKind.SELECT: self.select,
            NodeKind.INSERT: self.insert,
            NodeKind.UPDATE: self.update,
            NodeKind.DELETE: self.delete,
            NodeKind.MERGE: self.merge,
            NodeKind.CTE: self.cte,
            NodeKind.CREATE: self.create,
            NodeKind.GRANT: self.grant,
        }.get(node.kind, self.raw)
        handler(node, w, base)

        for comment in node.trailing_comments:
            self.comment(comment, w, base)

    def raw(self, node: Node, w: _Writer, base: int) -> None:
        if node.keyword is not None:
            self.token(node.keyword, w, base)
        self.elements(node.elements, w, base)

    def select(self, node: Node, w: _Writer, base: int) -> None:
        for index, clause in enumerate(node.children):
            if index > 0:
                w.newline(base)
            self.clause(clause, w, base)

    def clause(self, clause: Node, w: _Writer, base: int) -> None:
        if clause.keyword is None:
            self.elements(clause.elements, w, base)
            return

        keyword = clause.keyword.contents
        width = len(keyword) + 1
        self.token(clause.keyword, w, base)

        if keyword == "SELECT":
            self.elements(clause.elements, w, base)
            w.space()
            self.item_list(clause.items, w, base + 7, self.style.max_columns_select)
        elif keyword == "FROM":
            self.from_clause(clause, w, base)
        elif keyword in PREDICATE_CLAUSES:
            self.predicates(clause.conditions, w, base, len(keyword))
        elif keyword in _LIST_CLAUSES:
            w.space()
            self.item_list(clause.items, w, base + width, self.style.max_columns_update)
        elif keyword == "SET":
            w.space()
            self.item_list(clause.items, w, w.column + 1, self.style.max_columns_update)
        elif keyword in SET_OPERATORS:
            if clause.elements:
                w.newline(base)
                self.elements(clause.elements, w, base)
        else:
            self.elements(clause.elements, w, base + width)

    def from_clause(self, clause: Node, w: _Writer, base: int) -> None:
        block = self.style.new_line_for_subselects
        for index, source in enumerate(clause.items):
            if index > 0:
                self.punct(w, _COMMA)
                w.newline(base + 5)
            self.elements(source, w, base + 5, block=block)
        for join in clause.children:
            w.newline(base + 2)
            self.join(join, w, base + 2)

    def join(self, join: Node, w: _Writer, indent: int) -> None:
        self.token(join.keyword, w, indent)
        if join.items:
            self.elements(join.items[0], w, indent + 2, block=self.style.new_line_for_subselects)
        if join.conditions:
            self.join_conditions(join.conditions, w, indent, indent + len(join.keyword.contents))
        self.elements(join.elements, w, indent + 2)

    def join_conditions(self, conditions: List[Condition], w: _Writer, indent: int, keyword_end: int) -> None:
        """ON/AND/OR chain; wrapped connectors are right-aligned to keyword_end."""
        style = self.style.join_wrap_style
        wrap = style is JoinWrapStyle.ALWAYS or (style is JoinWrapStyle.ONLY_MULTIPLE and len(conditions) > 1)
        for condition in conditions:
            connector = condition.connector
            if connector is not None:
                if wrap:
                    w.newline(max(keyword_end - len(connector.contents), indent))
                self.token(connector, w, indent)
            self.elements(condition.elements, w, keyword_end + 1)

    def predicates(self, conditions: List[Condition], w: _Writer, base: int, keyword_width: int) -> None:
        align = base + keyword_width + 1
        for index, condition in enumerate(conditions):
            connector = condition.connector
            if index > 0 and connector is not None:
                if self.style.indent_where_conditions:
                    w.newline(base + max(keyword_width - len(connector.contents), 0))
                    self.token(connector, w, base)
                else:
                    w.newline(base)
                    self.token(connector, w, base)
                    w.pad_to(align)
            elif connector is not None:
                self.token(connector, w, base)
            self.elements(condition.elements, w, align)

    def item_list(self, items: List[List[Element]], w: _Writer, indent: int, threshold: int) -> None:
        for index, item in enumerate(items):
            if index > 0:
                if index % threshold == 0:
                    self.line_break_comma(w, indent)
                else:
                    self.punct(w, _COMMA)
                    w.space()
            self.elements(item, w, indent)

    def line_break_comma(self, w: _Writer, indent: int) -> None:
        if w.inline:
            self.punct(w, _COMMA)
            w.space()
        elif self.style.comma_after_line_break:
            w.newline(indent)
            self.punct(w, _COMMA)
            if self.style.space_after_line_break_comma:
                w.space()
            else:
                w.last = _OPEN
        else:
            self.punct(w, _COMMA)
            w.newline(indent)

    def update(self, node: Node, w: _Writer, base: int, set_indent: Optional[int] = None) -> None:
        if set_indent is None:
            set_indent = base + 3
        self.token(node.keyword, w, base)
        self.elements(node.elements, w, base + 7)
        for clause in node.children:
            if clause.keyword is not None and clause.keyword.contents == "SET":
                w.newline(set_indent)
                self.token(clause.keyword, w, set_indent)
                w.space()
                self.item_list(clause.items, w, set_indent + 4, self.style.max_columns_update)
            else:
                w.newline(base)
                self.clause(clause, w, base)

    def delete(self, node: Node, w: _Writer, base: int) -> None:
        self.token(node.keyword, w, base)
        self.elements(node.elements, w, base + 7)
        for clause in node.children:
            w.newline(base)
            self.clause(clause, w, base)

    def insert(self, node: Node, w: _Writer, base: int) -> None:
        self.token(node.keyword, w, base)
        self.elements(node.elements, w, base + 7)
        names: List[str] = []
        for child in node.children:
            if child.kind is NodeKind.PAREN_GROUP:
                names = [_plain_text(item) for item in child.items]
                self.tuple_block(child, w, base)
            elif child.keyword is not None and child.keyword.matches("VALUES"):
                w.newline(base)
                self.token(child.keyword, w, base)
                for index, item in enumerate(child.items):
                    if index > 0:
                        self.punct(w, _COMMA)
                    if len(item) == 1 and _is_paren_group(item[0]) and not item[0].is_subselect:
                        self.tuple_block(item[0], w, base, names if self.style.add_column_name_comments else None)
                    else:
                        self.elements(item, w, base + 2)
            else:
                w.newline(base)
                self.clause(child, w, base)
        if node.body is not None:
            w.newline(base)
            self.statement(node.body, w, base)

    def tuple_block(self, group: Node, w: _Writer, base: int, names: Optional[List[str]] = None) -> None:
        """
        Column or VALUES tuple of INSERT/MERGE.

        With one item per line the tuple is a bracket block; otherwise it
        stays on one line, wrapping every `max_columns_insert` items.
        """
        threshold = self.style.max_columns_insert
        indent = base + 2 if self.style.indent_insert else base
        if threshold == 1 and not w.inline:
            w.newline(base)
            self.punct(w, group.keyword)
            for index, item in enumerate(group.items):
                if index == 0:
                    w.newline(indent)
                else:
                    self.line_break_comma(w, indent)
                item = self.column_comment(names, index, item, w)
                self.elements(item, w, indent)
            w.newline(base)
        else:
            w.newline(indent)
            self.punct(w, group.keyword)
            for index, item in enumerate(group.items):
                if index > 0:
                    if index % threshold == 0:
                        self.line_break_comma(w, indent + 1)
                    else:
                        self.punct(w, _COMMA)
                        w.space()
                item = self.column_comment(names, index, item, w)
                self.elements(item, w, indent + 1)
        self.punct(w, group.closing)

    def column_comment(
        self, names: Optional[List[str]], index: int, item: List[Element], w: _Writer
    ) -> List[Element]:
        """Write the column name annotation; returns the item without an existing copy of it."""
        if not names or index >= len(names):
            return item
        annotation = f"/* {names[index]} */"
        first = item[0] if item else None
        if isinstance(first, Token) and first.is_comment and first.text == annotation:
            item = item[1:]
        w.write(annotation)
        w.space()
        w.last = _OPEN
        return item

    def merge(self, node: Node, w: _Writer, base: int) -> None:
        self.token(node.keyword, w, base)
        self.elements(node.elements, w, base + 6)
        for child in node.children:
            w.newline(base)
            self.token(child.keyword, w, base)
            if child.keyword.matches("USING"):
                if child.items:
                    self.elements(child.items[0], w, base + 6, block=True)
                if child.conditions:
                    self.join_conditions(child.conditions, w, base, base + len("USING"))
                continue

            self.elements(child.elements, w, base + 2)
            action = child.body
            if action is None:
                continue
            if action.kind is NodeKind.UPDATE:
                self.update(action, w, base + 2, set_indent=base + 2)
            elif action.kind is NodeKind.INSERT:
                w.newline(base + 2)
                self.insert(action, w, base + 2)
            else:
                self.raw(action, w, base + 2)

    def cte(self, node: Node, w: _Writer, base: int) -> None:
        if w.inline:
            w.broken = True
        self.token(node.keyword, w, base)
        self.elements(node.elements, w, base)
        for index, definition in enumerate(node.children):
            if index > 0:
                self.punct(w, _COMMA)
                w.newline(base)
            for element in definition.elements:
                if _is_paren_group(element) and element.role is ParenKind.TUPLE:
                    self.bracket_inline(element, w, base)
                else:
                    self.elements([element], w, base)
            self.token(definition.keyword, w, base)
            for modifiers in definition.items:
                self.elements(modifiers, w, base)

            group = definition.body
            if group.is_subselect:
                w.newline(base)
                self.punct(w, group.keyword)
                w.newline(base + 2)
                self.statement(group.body, w, base + 2)
                w.newline(base)
                self.punct(w, group.closing)
            else:
                self.paren_group(group, w, base)
        if node.body is not None:
            w.newline(base)
            self.statement(node.body, w, base)

    def bracket_inline(self, group: Node, w: _Writer, indent: int) -> None:
        """(a, b, c) with a space after every comma."""
        w.space()
        self.punct(w, group.keyword)
        for index, item in enumerate(group.items):
            if index > 0:
                self.punct(w, _COMMA)
                w.space()
            self.elements(item, w, indent)
        self.punct(w, group.closing)

    def create(self, node: Node, w: _Writer, base: int) -> None:
        self.token(node.keyword, w, base)
        self.elements(node.elements, w, base)
        is_table = any(_is_word(element, "TABLE") for element in node.elements)
        for child in node.children:
            if child.kind is NodeKind.PAREN_GROUP:
                if is_table:
                    self.table_definitions(child, w, base)
                else:
                    self.bracket_inline(child, w, base)
            elif _is_word(child.keyword, "AS"):
                w.newline(base)
                self.token(child.keyword, w, base)
                w.newline(base)
                self.statement(child.body, w, base)
            else:
                self.elements(child.elements, w, base)

    def table_definitions(self, group: Node, w: _Writer, base: int) -> None:
        """Column definitions, one per line, with data types aligned."""
        columns = [item for item in group.items if item and self.is_column_definition(item)]
        width = max((len(item[0].text) for item in columns), default=0)

        w.newline(base)
        self.punct(w, group.keyword)
        for index, item in enumerate(group.items):
            w.newline(base + 2)
            if item and self.is_column_definition(item):
                self.token(item[0], w, base + 2)
                w.pad_to(base + 2 + width + 3)
                rest = item[1:]
                if rest and isinstance(rest[0], Token) and rest[0].kind in _WORD_KINDS:
                    following = rest[1] if len(rest) > 1 else None
                    self.token(rest[0], w, base + 2, following, force_case=self.style.data_type_case)
                    rest = rest[1:]
                self.elements(rest, w, base + 4)
            else:
                self.elements(item, w, base + 4)
            if index < len(group.items) - 1:
                self.punct(w, _COMMA)
        w.newline(base)
        self.punct(w, group.closing)

    @staticmethod
    def is_column_definition(item: List[Element]) -> bool:
        first = item[0]
        return isinstance(first, Token) and first.kind in (TokenKind.IDENTIFIER, TokenKind.QUOTED_IDENTIFIER)

    def grant(self, node: Node, w: _Writer, base: int) -> None:
        self.token(node.keyword, w, base)
        self.elements(node.elements, w, base + 2)
        for clause in node.children:
            w.newline(base + 2)
            self.token(clause.keyword, w, base + 2)
            self.elements(clause.elements, w, base + 4)

    # ------------------------------------------------------------------------
    # Expressions
    # ------------------------------------------------------------------------

    def elements(
        self,
        elements: Sequence[Element],
        w: _Writer,
        indent: int,
        block: bool = False,
        type_after_as: bool = False,
    ) -> None:
        previous: Optional[Element] = None
        for index, element in enumerate(elements):
            following = elements[index + 1] if index + 1 < len(elements) else None
            if isinstance(element, Token):
                force_case = None
                if type_after_as and _is_word(previous, "AS") and element.kind in _WORD_KINDS:
                    force_case = self.style.data_type_case
                self.token(element, w, indent, following, force_case)
            elif element.kind is NodeKind.PAREN_GROUP:
                self.paren_group(element, w, indent, block=block and element.is_subselect)
            elif element.kind is NodeKind.CASE:
                self.case(element, w)
            else:
                w.space()
                self.statement(element, w, w.column)
            previous = element

    def paren_group(self, group: Node, w: _Writer, indent: int, block: bool = False) -> None:
        function_name = w.last if group.role is ParenKind.FUNCTION_CALL else None
        if function_name is not None and function_name.text.upper() == "DECODE" and group.elements and not w.inline:
            self.decode(group, w, w.column - len(function_name.text))
            return
        if (function_name is None or function_name.is_comment) and self.needs_space(w, group.keyword):
            w.space()
        self.punct(w, group.keyword)

        w.context.paren_stack.append(group.role or ParenKind.GROUPING)
        try:
            if group.is_subselect:
                self.subselect(group, w, block)
            else:
                is_cast = function_name is not None and function_name.contents.upper() in _CAST_FUNCTIONS
                self.elements(group.elements, w, w.column, type_after_as=is_cast)
        finally:
            w.context.paren_stack.pop()

        self.token(group.closing, w, indent)

    def decode(self, group: Node, w: _Writer, name_column: int) -> None:
        """
        DECODE(expr, search, result, ..., default) with one search/result pair
        per line, aligned after the parenthesis, and ")" below the function name.
        """
        self.punct(w, group.keyword)
        column = w.column
        w.context.paren_stack.append(ParenKind.FUNCTION_CALL)
        try:
            for index, argument in enumerate(_split_arguments(group.elements)):
                if index > 0:
                    self.punct(w, _COMMA)
                    if index % 2 == 1:
                        w.newline(column)
                self.elements(argument, w, column)
        finally:
            w.context.paren_stack.pop()
        w.newline(name_column)
        self.token(group.closing, w, name_column)

    def subselect(self, group: Node, w: _Writer, block: bool) -> None:
        if block and not w.inline:
            outer = w.line_indent
            w.newline(outer + 2)
            self.statement(group.body, w, outer + 2)
            w.newline(outer)
            return

        if not w.inline:
            inline_text = self.try_inline(group.body)
            if inline_text is not None:
                w.write(inline_text)
                w.last = _CLOSE
                return

        self.statement(group.body, w, w.column)

    def try_inline(self, node: Node) -> Optional[str]:
        """One-line rendering of node, or None if it does not fit."""
        writer = _Writer(inline=True)
        self.statement(node, writer, 0)
        text = writer.text()
        if writer.broken or len(text) > self.max_line_width:
            return None
        return text

    def case(self, node: Node, w: _Writer) -> None:
        self.token(node.keyword, w, w.column)
        column = w.column - len(node.keyword.text)
        self.elements(node.elements, w, column + 5)
        for branch in node.children:
            w.newline(column + 2)
            self.token(branch.keyword, w, column + 2)
            self.elements(branch.elements, w, column + 3 + len(branch.keyword.contents))
        w.newline(column)
        self.token(node.closing, w, column)

    # ------------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------------

    def comment(self, token: Token, w: _Writer, indent: int) -> None:
        if token.start in self.line_starts:
            w.newline(indent)
        else:
            w.space()
        w.write(token.text)
        w.last = token
        w.last_unary = False
        if token.is_line_comment:
            w.end_line_after_comment(indent)

    def punct(self, w: _Writer, token: Token) -> None:
        w.write(token.text)
        w.last = token
        w.last_unary = False

    def token(
        self,
        token: Token,
        w: _Writer,
        indent: int,
        following: Optional[Element] = None,
        force_case: Optional[KeywordCase] = None,
    ) -> None:
        if token.is_comment:
            self.comment(token, w, indent)
            return
        if self.needs_space(w, token):
            w.space()
        text = force_case.apply(token.text) if force_case is not None else self.cased(token, w.last, following)
        unary = token.kind is TokenKind.OPERATOR and token.text in _UNARY_OPERATORS and self.is_unary_position(w.last)
        w.write(text)
        w.last = token
        w.last_unary = unary

    def needs_space(self, w: _Writer, token: Token) -> bool:
        previous = w.last
        if previous is None or previous.is_comment:
            return True
        if token.kind in (TokenKind.COMMA, TokenKind.SEMICOLON, TokenKind.PAREN_CLOSE):
            return False
        if previous.kind is TokenKind.PAREN_OPEN:
            return False
        if previous.kind is TokenKind.COMMA:
            return not w.in_list_parens or self.style.space_after_in_list_comma
        if w.last_unary:
            return False
        if previous.kind is TokenKind.OPERATOR:
            if previous.text in self.separators or previous.text in ("::", "[", "{"):
                return False
        if token.kind is TokenKind.OPERATOR:
            if token.text in self.separators or token.text in ("::", "]", "}"):
                return False
            if token.text == "[" and previous.kind in (TokenKind.IDENTIFIER, TokenKind.QUOTED_IDENTIFIER):
                return False
        return True

    @staticmethod
    def is_unary_position(previous: Optional[Token]) -> bool:
        if previous is None or previous.is_comment:
            return True
        if previous.kind in (TokenKind.OPERATOR, TokenKind.COMMA, TokenKind.PAREN_OPEN):
            return True
        return previous.is_reserved and previous.contents not in OPERAND_KEYWORDS

    def cased(self, token: Token, previous: Optional[Token], following: Optional[Element]) -> str:
        if token.kind not in _WORD_KINDS:
            return token.text

        style = self.style
        if previous is not None and previous.kind is TokenKind.OPERATOR:
            if previous.text == "::":
                return style.data_type_case.apply(token.text)
            if previous.text in self.separators:
                return style.identifier_case.apply(token.text)

        if (
            _is_paren_group(following)
            and following.role is ParenKind.FUNCTION_CALL
            and self.registry.is_function(token.contents.upper(), style.additional_function_names)
        ):
            return style.function_case.apply(token.text)

        if token.is_reserved:
            if style.keyword_case is KeywordCase.AS_IS:
                return " ".join(token.text.split())
            return style.keyword_case.apply(token.contents)
        return style.identifier_case.apply(token.text)


# ============================================================================
# Public API
# ============================================================================


def _comment_line_starts(stream: TokenStream) -> Set[int]:
    """Offsets of comments that begin a line in the source."""
    starts: Set[int] = set()
    previous: Optional[Token] = None
    for token in stream:
        if token.is_comment and (previous is None or (previous.is_whitespace and "\n" in previous.text)):
            starts.add(token.start)
        previous = token
    return starts


class SqlFormatter:
    """
    Reformats SQL text according to a StyleConfig.

    A formatter holds only read-only settings, so one instance may be used
    from several threads at once.

    Args:
        style: StyleConfig, or a mapping accepted by StyleConfig.from_dict
        max_line_width: Longest one-line rendering of a subquery before it
            is expanded onto several lines
        dialect: Optional dialect hint ("postgres", "tsql", "oracle", ...)
    """

    def __init__(
        self,
        style: Union[StyleConfig, Mapping[str, object], None] = None,
        max_line_width: int = 60,
        dialect: Optional[str] = None,
    ):
        if style is None:
            style = StyleConfig()
        elif isinstance(style, Mapping):
            style = StyleConfig.from_dict(style)
        elif not isinstance(style, StyleConfig):
            raise TypeError(f"style must be a StyleConfig or a mapping, got {type(style).__name__}")

        if not isinstance(max_line_width, int) or isinstance(max_line_width, bool):
            raise TypeError(f"max_line_width must be an int, got {type(max_line_width).__name__}")
        if max_line_width < 1:
            logger.warning("max_line_width must be at least 1 (got %d), clamping to 1", max_line_width)
            max_line_width = 1

        self.style = style
        self.max_line_width = max_line_width
        self.dialect = dialect
        self.registry = get_registry(dialect)

    def format(self, text: str) -> str:
        """
        Format every statement in `text`.

        Never raises for malformed SQL: statements that cannot be modelled
        are passed through with whitespace collapsed.

        Args:
            text: SQL source, possibly several statements separated by ";"

        Returns:
            Formatted SQL; statements are separated by a blank line
        """
        if not isinstance(text, str):
            raise TypeError(f"SQL source must be str, got {type(text).__name__}")
        return self.format_stream(SQLLexer(text, self.registry).tokenize())

    def format_stream(self, stream: TokenStream) -> str:
        """Format an already lexed token stream."""
        line_starts = _comment_line_starts(stream)
        rendered: List[str] = []
        for statement in stream.statements():
            text = self._format_statement(statement, line_starts)
            if text:
                rendered.append(text)
        return "\n\n".join(rendered)

    def _format_statement(self, statement: TokenStream, line_starts: Set[int]) -> str:
        significant = [token for token in statement.significant() if token.kind is not TokenKind.SEMICOLON]
        if not significant:
            return ""
        terminator = statement[-1] if statement[-1].kind is TokenKind.SEMICOLON else None

        walker = StructuralWalker(self.registry, self.style.additional_function_names)
        node = walker.walk(statement)
        renderer = _Renderer(self.style, self.registry, self.max_line_width, line_starts)
        try:
            text = renderer.render(node, terminator)
        except (StructureError, IndexError) as e:
            logger.debug("Rendering failed (%s), passing statement through", e)
            text = renderer.render(Node(kind=NodeKind.RAW, elements=list(significant)), terminator)
        return text

    def to_dict(self) -> Dict[str, object]:
        return {
            "style": self.style.to_dict(),
            "max_line_width": self.max_line_width,
            "dialect": self.dialect,
        }


def format_sql(
    source_text: str,
    max_line_width: int = 60,
    dialect: Optional[str] = None,
    style: Union[StyleConfig, Mapping[str, object], None] = None,
) -> str:
    """Format SQL text with a one-off SqlFormatter."""
    return SqlFormatter(style=style, max_line_width=max_line_width, dialect=dialect).format(source_text)


__all__ = [
    "SqlFormatter",
    "format_sql",
]
