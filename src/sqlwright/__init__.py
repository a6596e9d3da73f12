"""
sqlwright - Reformat SQL text into a consistent, readable layout

Lexes SQL of several dialects, models each statement's clause structure and
re-emits it with configurable keyword casing, line breaks and alignment.
"""

from importlib.metadata import version

__version__ = version("sqlwright")

# Configuration
from .config import JoinWrapStyle, KeywordCase, StyleConfig

# Formatting entry points
from .formatter import SqlFormatter, format_sql

# Keyword tables
from .keywords import KeywordRegistry, get_registry

# Lexing
from .lexer import SQLLexer, tokenize
from .models import (
    Condition,
    FormattingContext,
    Node,
    NodeKind,
    ParenKind,
    Token,
    TokenKind,
    TokenStream,
)

# Structure
from .walker import StructuralWalker, StructureError

__all__ = [
    # Version
    "__version__",
    # Main entry points
    "format_sql",
    "SqlFormatter",
    "StyleConfig",
    "KeywordCase",
    "JoinWrapStyle",
    # Lexing (advanced usage)
    "SQLLexer",
    "tokenize",
    "Token",
    "TokenKind",
    "TokenStream",
    "KeywordRegistry",
    "get_registry",
    # Structure (advanced usage)
    "StructuralWalker",
    "StructureError",
    "Node",
    "NodeKind",
    "ParenKind",
    "Condition",
    "FormattingContext",
]
