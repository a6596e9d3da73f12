"""
Core data models for the SQL formatter.

Contains all dataclass definitions for:
- Lexical models (Token, TokenKind, TokenStream)
- Structural models produced by the walker (Node, NodeKind, ParenKind, Condition)
- Transient per-call formatting state (FormattingContext)
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, List, Optional, Sequence, Union, overload

# ============================================================================
# Lexical Models
# ============================================================================


class TokenKind(Enum):
    """Kind of a lexical unit"""

    RESERVED_WORD = "reserved_word"
    IDENTIFIER = "identifier"
    QUOTED_IDENTIFIER = "quoted_identifier"  # "x", [x] or `x`
    STRING_LITERAL = "string_literal"
    NUMBER_LITERAL = "number_literal"
    OPERATOR = "operator"

    # Punctuation
    PAREN_OPEN = "paren_open"
    PAREN_CLOSE = "paren_close"
    COMMA = "comma"
    SEMICOLON = "semicolon"

    COMMENT = "comment"
    WHITESPACE = "whitespace"
    PLACEHOLDER = "placeholder"  # $[name], ${name}, :name, ?


PUNCTUATION_KINDS = frozenset(
    {TokenKind.PAREN_OPEN, TokenKind.PAREN_CLOSE, TokenKind.COMMA, TokenKind.SEMICOLON}
)

LITERAL_KINDS = frozenset({TokenKind.STRING_LITERAL, TokenKind.NUMBER_LITERAL})

# Tokens that can stand on the left-hand side of a binary operator
OPERAND_KINDS = frozenset(
    {
        TokenKind.IDENTIFIER,
        TokenKind.QUOTED_IDENTIFIER,
        TokenKind.STRING_LITERAL,
        TokenKind.NUMBER_LITERAL,
        TokenKind.PLACEHOLDER,
        TokenKind.PAREN_CLOSE,
    }
)


@dataclass(frozen=True)
class Token:
    """
    One classified lexical unit of SQL source text.

    `text` is the raw source slice. `contents` is the normalized form: for
    reserved words it is the upper-case phrase with inner whitespace collapsed
    (so "left   Outer join" has contents "LEFT OUTER JOIN"); for everything
    else it equals `text`.
    """

    kind: TokenKind
    text: str
    start: int  # Offset of the first character in the source
    contents: str = ""

    def __post_init__(self):
        if not self.contents:
            object.__setattr__(self, "contents", self.text)

    @property
    def end(self) -> int:
        """Offset one past the last character in the source"""
        return self.start + len(self.text)

    @property
    def is_reserved(self) -> bool:
        return self.kind is TokenKind.RESERVED_WORD

    @property
    def is_compound_keyword(self) -> bool:
        return self.kind is TokenKind.RESERVED_WORD and " " in self.contents

    @property
    def is_placeholder(self) -> bool:
        return self.kind is TokenKind.PLACEHOLDER

    @property
    def is_comment(self) -> bool:
        return self.kind is TokenKind.COMMENT

    @property
    def is_line_comment(self) -> bool:
        return self.kind is TokenKind.COMMENT and self.text.startswith("--")

    @property
    def is_whitespace(self) -> bool:
        return self.kind is TokenKind.WHITESPACE

    @property
    def is_punctuation(self) -> bool:
        return self.kind in PUNCTUATION_KINDS

    @property
    def is_literal(self) -> bool:
        return self.kind in LITERAL_KINDS

    def matches(self, *words: str) -> bool:
        """True if this is a reserved word whose contents is one of `words`"""
        return self.kind is TokenKind.RESERVED_WORD and self.contents in words

    def __repr__(self) -> str:
        return f"Token({self.kind.name}, {self.text!r}, {self.start})"


class TokenStream(Sequence[Token]):
    """
    Ordered, position-addressable sequence of tokens for one input.

    A stream is an immutable slice: slicing returns another TokenStream over
    the same tokens, so re-scanning part of the input never needs the lexer.
    Concatenating the raw text of every token reproduces the original input.
    """

    def __init__(self, tokens: Sequence[Token] = ()):
        self._tokens = tuple(tokens)

    @overload
    def __getitem__(self, index: int) -> Token: ...

    @overload
    def __getitem__(self, index: slice) -> "TokenStream": ...

    def __getitem__(self, index):
        if isinstance(index, slice):
            return TokenStream(self._tokens[index])
        return self._tokens[index]

    def __len__(self) -> int:
        return len(self._tokens)

    def __iter__(self) -> Iterator[Token]:
        return iter(self._tokens)

    def __eq__(self, other) -> bool:
        if isinstance(other, TokenStream):
            return self._tokens == other._tokens
        return NotImplemented

    def __repr__(self) -> str:
        return f"TokenStream({len(self._tokens)} tokens)"

    @property
    def text(self) -> str:
        """The exact source text covered by this stream"""
        return "".join(token.text for token in self._tokens)

    def significant(self, skip_comments: bool = False) -> List[Token]:
        """Tokens without whitespace (and optionally without comments)."""
        return [
            token
            for token in self._tokens
            if not token.is_whitespace and not (skip_comments and token.is_comment)
        ]

    def statements(self) -> List["TokenStream"]:
        """
        Split the stream at semicolons.

        Each returned stream ends with its semicolon token (if it had one).
        A trailing run without a semicolon becomes the last stream.
        """
        result: List[TokenStream] = []
        begin = 0
        for index, token in enumerate(self._tokens):
            if token.kind is TokenKind.SEMICOLON:
                result.append(TokenStream(self._tokens[begin : index + 1]))
                begin = index + 1
        if begin < len(self._tokens):
            result.append(TokenStream(self._tokens[begin:]))
        return result


# ============================================================================
# Structural Models
# ============================================================================


class NodeKind(Enum):
    """Type of structural node"""

    SELECT = "select"  # Query block, children are its clauses
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"
    MERGE = "merge"
    CTE = "cte"  # WITH block, children are definitions, body is the main statement
    CASE = "case"
    JOIN = "join"
    PAREN_GROUP = "paren_group"
    RAW = "raw"  # Unrecognized construct, rendered with whitespace collapsed

    CLAUSE = "clause"  # Keyword-led part of a statement (FROM, WHERE, SET, WHEN ...)
    CREATE = "create"
    GRANT = "grant"  # GRANT / REVOKE


class ParenKind(Enum):
    """Why a parenthesis was opened"""

    SUBSELECT = "subselect"
    GROUPING = "grouping"
    FUNCTION_CALL = "function_call"
    TUPLE = "tuple"


@dataclass
class Condition:
    """One member of an AND/OR chain; the first member's connector is None (or ON)"""

    connector: Optional[Token]
    elements: List["Element"] = field(default_factory=list)


@dataclass
class Node:
    """
    Tagged structural node built by the walker and consumed by the formatter.

    Which fields are populated depends on `kind`:
    - SELECT: children are CLAUSE nodes in source order
    - CLAUSE: keyword plus elements, or items (comma lists), or conditions
      (predicate chains); a FROM clause additionally has JOIN children
    - JOIN: keyword, items[0] is the joined source, conditions is the ON chain
    - CASE: elements is the operand, children are WHEN/ELSE clauses, closing is END
    - PAREN_GROUP: keyword/closing are the parens, body is the subquery when
      role is SUBSELECT, elements otherwise
    - CTE: children are the definitions, body is the main statement
    """

    kind: NodeKind
    keyword: Optional[Token] = None  # Leading keyword (SELECT, FROM, LEFT JOIN, "(" ...)
    closing: Optional[Token] = None  # ")" for paren groups, END for CASE

    elements: List["Element"] = field(default_factory=list)  # Unsplit element run
    items: List[List["Element"]] = field(default_factory=list)  # Depth-0 comma split
    separators: List[Token] = field(default_factory=list)  # Commas dropped by the split
    conditions: List[Condition] = field(default_factory=list)  # Depth-0 AND/OR split
    children: List["Node"] = field(default_factory=list)
    body: Optional["Node"] = None  # Wrapped statement or subquery

    role: Optional[ParenKind] = None  # Only for PAREN_GROUP
    depth: int = 0  # Paren nesting depth where the node starts

    leading_comments: List[Token] = field(default_factory=list)
    trailing_comments: List[Token] = field(default_factory=list)

    @property
    def is_subselect(self) -> bool:
        return self.kind is NodeKind.PAREN_GROUP and self.role is ParenKind.SUBSELECT

    def tokens(self) -> Iterator[Token]:
        """All tokens under this node, in source order."""
        collected: List[Token] = list(self.leading_comments)
        if self.keyword is not None:
            collected.append(self.keyword)
        for element in _walk_elements(self):
            if isinstance(element, Token):
                collected.append(element)
            else:
                collected.extend(element.tokens())
        if self.closing is not None:
            collected.append(self.closing)
        collected.extend(self.trailing_comments)
        # A paren group keeps its elements next to their comma split
        unique = {token.start: token for token in collected}
        return iter(sorted(unique.values(), key=lambda token: token.start))


Element = Union[Token, Node]


def _walk_elements(node: Node) -> Iterator[Element]:
    yield from node.elements
    for item in node.items:
        yield from item
    yield from node.separators
    for condition in node.conditions:
        if condition.connector is not None:
            yield condition.connector
        yield from condition.elements
    yield from node.children
    if node.body is not None:
        yield node.body


# ============================================================================
# Formatting State
# ============================================================================


@dataclass
class FormattingContext:
    """
    Transient state for one walk or one rendering pass.

    Never shared between calls; the walker uses the paren stack and clause,
    the line writer uses indent and column.
    """

    indent: int = 0  # Indentation of the current line
    column: int = 0  # Running column counter
    clause: Optional[str] = None  # Contents of the clause keyword being processed
    paren_stack: List[ParenKind] = field(default_factory=list)

    @property
    def depth(self) -> int:
        return len(self.paren_stack)

    @property
    def in_subselect(self) -> bool:
        return ParenKind.SUBSELECT in self.paren_stack


__all__ = [
    # Lexical
    "TokenKind",
    "Token",
    "TokenStream",
    "PUNCTUATION_KINDS",
    "LITERAL_KINDS",
    "OPERAND_KINDS",
    # Structural
    "NodeKind",
    "ParenKind",
    "Condition",
    "Node",
    "Element",
    # State
    "FormattingContext",
]
