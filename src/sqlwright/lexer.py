"""
SQL lexer.

Turns raw SQL text into a TokenStream. The lexer is dialect tolerant: it
recognizes the quoting conventions of several engines at once, merges
multi-word keywords (LEFT OUTER JOIN, GROUP BY, CREATE OR REPLACE ...) into
single tokens, and keeps comments and whitespace so the concatenated token
text always reproduces the input exactly.

Malformed input never raises: an unterminated string, quoted identifier or
comment simply becomes a token that runs to the end of the input.
"""

import logging
import re
from typing import List, Optional, Tuple

from .keywords import OPERAND_KEYWORDS, KeywordRegistry, get_registry
from .models import OPERAND_KINDS, Token, TokenKind, TokenStream

logger = logging.getLogger(__name__)

# ============================================================================
# Patterns
# ============================================================================

_WHITESPACE = re.compile(r"\s+")
_WORD = re.compile(r"[^\W\d][\w$#]*")
_SPECIAL_NAME = re.compile(r"(?:@@?|##?)[\w$#@]+")  # @var, @@var, #temp, ##temp
_NUMBER = re.compile(r"(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")
_BIND_VARIABLE = re.compile(r":[^\W\d]\w*")
_POSITIONAL_PARAMETER = re.compile(r"\$\d+")
_DOLLAR_TAG = re.compile(r"\$(?:[^\W\d]\w*)?\$")
_STRING_PREFIX = re.compile(r"(?:[NnEeXxBb]|[Uu]&)'")

# Longest first so that "->>" wins over "->"
_OPERATORS: Tuple[str, ...] = (
    "->>",
    "<=>",
    "::",
    "<>",
    "!=",
    "<=",
    ">=",
    "||",
    ":=",
    "=>",
    "->",
    "*=",
    "^=",
    "~*",
    "!~",
    "&&",
    "<<",
    ">>",
)

_SIMPLE_PUNCTUATION = {
    "(": TokenKind.PAREN_OPEN,
    ")": TokenKind.PAREN_CLOSE,
    ",": TokenKind.COMMA,
    ";": TokenKind.SEMICOLON,
}


def _normalize_keyword(text: str) -> str:
    return " ".join(text.split()).upper()


class SQLLexer:
    """
    Scans SQL text into tokens.

    The lexer is restartable: reset() rewinds it to the start of the same
    input so independent passes can run over the same text.

    Example:
        lexer = SQLLexer("select a from t")
        token = lexer.next_token(skip_whitespace=True)  # SELECT
        stream = SQLLexer("select a from t").tokenize()
        assert stream.text == "select a from t"
    """

    def __init__(self, source: str, registry: Optional[KeywordRegistry] = None):
        if not isinstance(source, str):
            raise TypeError(f"SQL source must be str, got {type(source).__name__}")
        self.source = source
        self.registry = registry or get_registry()
        self._pos = 0
        self._last_significant: Optional[Token] = None

    def reset(self) -> None:
        """Rewind to the start of the input."""
        self._pos = 0
        self._last_significant = None

    @property
    def at_end(self) -> bool:
        return self._pos >= len(self.source)

    def next_token(self, skip_whitespace: bool = False, skip_comments: bool = False) -> Optional[Token]:
        """
        Return the next token, or None at the end of the input.

        Args:
            skip_whitespace: Silently step over whitespace tokens
            skip_comments: Silently step over comment tokens

        Returns:
            Next Token, or None when the input is exhausted
        """
        while self._pos < len(self.source):
            token = self._scan()
            self._pos = token.end
            if token.is_whitespace:
                if skip_whitespace:
                    continue
                return token
            if token.is_comment:
                if skip_comments:
                    continue
                return token
            self._last_significant = token
            return token
        return None

    def tokenize(self) -> TokenStream:
        """Lex the whole input from the start into a TokenStream."""
        self.reset()
        tokens: List[Token] = []
        while True:
            token = self.next_token()
            if token is None:
                break
            tokens.append(token)
        self.reset()
        return TokenStream(tokens)

    # ------------------------------------------------------------------------
    # Scanning
    # ------------------------------------------------------------------------

    def _scan(self) -> Token:
        source = self.source
        pos = self._pos
        char = source[pos]
        nxt = source[pos + 1] if pos + 1 < len(source) else ""

        if char.isspace():
            end = _WHITESPACE.match(source, pos).end()
            return Token(TokenKind.WHITESPACE, source[pos:end], pos)

        if char == "-" and nxt == "-":
            end = source.find("\n", pos)
            if end < 0:
                end = len(source)
            return Token(TokenKind.COMMENT, source[pos:end], pos)

        if char == "/" and nxt == "*":
            end = source.find("*/", pos + 2)
            end = len(source) if end < 0 else end + 2
            return Token(TokenKind.COMMENT, source[pos:end], pos)

        if char == "'":
            return Token(TokenKind.STRING_LITERAL, source[pos : self._quoted_end(pos, "'")], pos)

        prefix = _STRING_PREFIX.match(source, pos)
        if prefix:
            quote = prefix.end() - 1
            return Token(TokenKind.STRING_LITERAL, source[pos : self._quoted_end(quote, "'")], pos)

        if char == '"':
            return Token(TokenKind.QUOTED_IDENTIFIER, source[pos : self._quoted_end(pos, '"')], pos)

        if char == "`":
            return Token(TokenKind.QUOTED_IDENTIFIER, source[pos : self._quoted_end(pos, "`")], pos)

        if char == "[":
            end = self._bracket_end(pos)
            if end is not None:
                return Token(TokenKind.QUOTED_IDENTIFIER, source[pos:end], pos)
            return Token(TokenKind.OPERATOR, char, pos)

        if char == "$":
            token = self._scan_dollar(pos)
            if token is not None:
                return token

        if char in _SIMPLE_PUNCTUATION:
            return Token(_SIMPLE_PUNCTUATION[char], char, pos)

        if char == "?":
            return Token(TokenKind.PLACEHOLDER, char, pos)

        if char == ":" and nxt != ":":
            match = _BIND_VARIABLE.match(source, pos)
            if match:
                return Token(TokenKind.PLACEHOLDER, match.group(), pos)

        if char in "@#":
            match = _SPECIAL_NAME.match(source, pos)
            if match:
                return Token(TokenKind.IDENTIFIER, match.group(), pos)

        if char.isdigit() or (char == "." and nxt.isdigit()):
            end = _NUMBER.match(source, pos).end()
            return Token(TokenKind.NUMBER_LITERAL, source[pos:end], pos)

        if char in "+-" and self._sign_allowed():
            number = _NUMBER.match(source, pos + 1)
            if number:
                return Token(TokenKind.NUMBER_LITERAL, source[pos : number.end()], pos)

        word = _WORD.match(source, pos)
        if word:
            return self._scan_word(pos, word.end())

        for operator in _OPERATORS:
            if source.startswith(operator, pos):
                return Token(TokenKind.OPERATOR, operator, pos)

        return Token(TokenKind.OPERATOR, char, pos)

    def _quoted_end(self, pos: int, quote: str) -> int:
        """End offset of a quoted run starting at pos; a doubled quote is an escape."""
        source = self.source
        index = pos + 1
        while True:
            index = source.find(quote, index)
            if index < 0:
                logger.debug("Unterminated %s-quoted text at offset %d", quote, pos)
                return len(source)
            if source.startswith(quote * 2, index):
                index += 2
                continue
            return index + 1

    def _bracket_end(self, pos: int) -> Optional[int]:
        close = self.source.find("]", pos + 1)
        if close < 0:
            return None
        content = self.source[pos + 1 : close]
        if not content or "\n" in content or "[" in content:
            return None
        return close + 1

    def _scan_dollar(self, pos: int) -> Optional[Token]:
        source = self.source
        if source.startswith("$[", pos) or source.startswith("${", pos):
            close = "]" if source[pos + 1] == "[" else "}"
            end = source.find(close, pos + 2)
            if end >= 0 and not any(c.isspace() for c in source[pos + 2 : end]):
                return Token(TokenKind.PLACEHOLDER, source[pos : end + 1], pos)
            return None

        positional = _POSITIONAL_PARAMETER.match(source, pos)
        if positional:
            return Token(TokenKind.PLACEHOLDER, positional.group(), pos)

        tag = _DOLLAR_TAG.match(source, pos)
        if tag:
            close = source.find(tag.group(), tag.end())
            end = len(source) if close < 0 else close + len(tag.group())
            return Token(TokenKind.STRING_LITERAL, source[pos:end], pos)
        return None

    def _sign_allowed(self) -> bool:
        """A leading sign belongs to a number only if no operand precedes it."""
        last = self._last_significant
        if last is None:
            return True
        if last.kind in OPERAND_KINDS:
            return False
        if last.kind is TokenKind.RESERVED_WORD and last.contents in OPERAND_KEYWORDS:
            return False
        return True

    def _scan_word(self, pos: int, word_end: int) -> Token:
        source = self.source
        text = source[pos:word_end]
        node = self.registry.compounds.step(text)

        best_end = None
        best_phrase = None
        cursor = word_end
        while node is not None:
            gap = _WHITESPACE.match(source, cursor)
            if gap is None:
                break
            following = _WORD.match(source, gap.end())
            if following is None:
                break
            node = node.step(following.group())
            if node is None:
                break
            cursor = following.end()
            if node.phrase is not None:
                best_end, best_phrase = cursor, node.phrase

        if best_end is not None:
            return Token(TokenKind.RESERVED_WORD, source[pos:best_end], pos, best_phrase)

        if self.registry.is_reserved(text):
            return Token(TokenKind.RESERVED_WORD, text, pos, _normalize_keyword(text))
        return Token(TokenKind.IDENTIFIER, text, pos)


def tokenize(source: str, dialect: Optional[str] = None) -> TokenStream:
    """Lex `source` with the keyword registry of `dialect`."""
    return SQLLexer(source, get_registry(dialect)).tokenize()


__all__ = [
    "SQLLexer",
    "tokenize",
]
