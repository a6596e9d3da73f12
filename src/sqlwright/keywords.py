"""
Keyword registry.

Contains the reserved words, compound keyword phrases, function names and data
type names the lexer and formatter rely on, plus per-dialect extras.

The generic tables are curated here; dialect-specific tables are completed from
sqlglot's dialect tokenizers and parsers, so a dialect hint such as "tsql" or
"oracle" adds that engine's keywords and functions without changing the
formatting algorithm.
"""

import logging
import re
from functools import lru_cache
from typing import Dict, FrozenSet, Iterable, Optional, Set

from sqlglot.dialects.dialect import Dialect
from sqlglot.parser import Parser
from sqlglot.tokens import Tokenizer

logger = logging.getLogger(__name__)

# Single upper-case SQL word, as found in sqlglot's keyword tables
_PLAIN_WORD = re.compile(r"^[A-Z_][A-Z0-9_]*$")

# ============================================================================
# Generic Tables
# ============================================================================

BASE_RESERVED_WORDS: FrozenSet[str] = frozenset(
    {
        "ADD", "ALL", "ALTER", "AND", "ANY", "AS", "ASC", "BETWEEN", "BY",
        "CASCADE", "CASE", "CAST", "CHECK", "COLLATE", "COLUMN", "COMMENT",
        "COMMIT", "CONNECT", "CONSTRAINT", "CREATE", "CROSS", "CUBE", "CURRENT",
        "CURRENT_DATE", "CURRENT_TIME", "CURRENT_TIMESTAMP", "CURRENT_USER",
        "DATABASE", "DATE", "DEFAULT", "DELETE", "DESC", "DISTINCT", "DO", "DROP",
        "ELSE", "END", "ESCAPE", "EXCEPT", "EXISTS", "FALSE", "FETCH", "FIRST",
        "FOLLOWING", "FOR", "FOREIGN", "FROM", "FULL", "FUNCTION", "GRANT",
        "GROUP", "GROUPING", "HAVING", "IF", "IN", "INDEX", "INNER", "INSERT",
        "INTERSECT", "INTERVAL", "INTO", "IS", "JOIN", "KEY", "LAST", "LATERAL",
        "LEFT", "LIKE", "LIMIT", "MATCHED", "MERGE", "MINUS", "NATURAL", "NEXT",
        "NO", "NOT", "NOTHING", "NULL", "NULLS", "OF", "OFFSET", "ON", "ONLY",
        "OPTION", "OR", "ORDER", "OUTER", "OVER", "PARTITION", "PRECEDING",
        "PRIMARY", "PROCEDURE", "QUALIFY", "RANGE", "RECURSIVE", "REFERENCES",
        "REPLACE", "RETURNING", "REVOKE", "RIGHT", "ROLLBACK", "ROLLUP", "ROW",
        "ROWS", "SCHEMA", "SELECT", "SEQUENCE", "SET", "SETS", "SOME", "START",
        "TABLE", "TEMPORARY", "THEN", "TIES", "TIME", "TIMESTAMP", "TO",
        "TRIGGER", "TRUE", "TRUNCATE", "UNBOUNDED", "UNION", "UNIQUE", "UPDATE",
        "USING", "VALUES", "VIEW", "WHEN", "WHERE", "WINDOW", "WITH", "WITHIN",
    }
)  # fmt: skip

# Multi-word phrases merged into one token by the lexer (greedy longest match)
COMPOUND_KEYWORDS: FrozenSet[str] = frozenset(
    {
        # Set operations
        "UNION ALL",
        "UNION DISTINCT",
        "INTERSECT ALL",
        "EXCEPT ALL",
        "MINUS ALL",
        # Clauses
        "GROUP BY",
        "ORDER BY",
        "ORDER SIBLINGS BY",
        "PARTITION BY",
        "GROUPING SETS",
        "START WITH",
        "CONNECT BY",
        "NULLS FIRST",
        "NULLS LAST",
        # DDL
        "CREATE OR REPLACE",
        "PACKAGE BODY",
        "MATERIALIZED VIEW",
        "PRIMARY KEY",
        "FOREIGN KEY",
        "IF EXISTS",
        "IF NOT EXISTS",
        # Predicates
        "IS NULL",
        "IS NOT NULL",
        "NOT NULL",
        # Joins
        "INNER JOIN",
        "CROSS JOIN",
        "NATURAL JOIN",
        "OUTER JOIN",
        "LEFT JOIN",
        "RIGHT JOIN",
        "FULL JOIN",
        "LEFT OUTER JOIN",
        "RIGHT OUTER JOIN",
        "FULL OUTER JOIN",
        "LEFT SEMI JOIN",
        "LEFT ANTI JOIN",
        "NATURAL INNER JOIN",
        "NATURAL LEFT JOIN",
        "NATURAL RIGHT JOIN",
        "NATURAL FULL JOIN",
        "OUTER APPLY",
        "CROSS APPLY",
    }
)

BASE_FUNCTIONS: FrozenSet[str] = frozenset(
    {
        "ABS", "AVG", "CAST", "CEIL", "CEILING", "CHAR_LENGTH", "COALESCE",
        "CONCAT", "CONVERT", "COUNT", "CUME_DIST", "DECODE", "DENSE_RANK",
        "EXTRACT", "FIRST_VALUE", "FLOOR", "GREATEST", "LAG", "LAST_VALUE",
        "LEAD", "LEAST", "LEFT", "LENGTH", "LOWER", "LPAD", "LTRIM", "MAX", "MIN",
        "MOD", "NTILE", "NULLIF", "PERCENT_RANK", "POSITION", "POWER", "RANK",
        "REPLACE", "RIGHT", "ROUND", "ROW_NUMBER", "RPAD", "RTRIM", "SIGN",
        "SQRT", "STDDEV", "SUBSTRING", "SUM", "TRIM", "UPPER", "VARIANCE",
    }
)  # fmt: skip

BASE_DATA_TYPES: FrozenSet[str] = frozenset(
    {
        "BIGINT", "BINARY", "BIT", "BLOB", "BOOL", "BOOLEAN", "CHAR", "CHARACTER",
        "CLOB", "DATE", "DATETIME", "DECIMAL", "DOUBLE", "FLOAT", "INT",
        "INTEGER", "INTERVAL", "JSON", "NCHAR", "NCLOB", "NUMBER", "NUMERIC",
        "NVARCHAR", "REAL", "SMALLINT", "TEXT", "TIME", "TIMESTAMP", "TINYINT",
        "UUID", "VARBINARY", "VARCHAR", "VARCHAR2", "XML",
    }
)  # fmt: skip

# Keywords that can be the left operand of a binary operator
OPERAND_KEYWORDS: FrozenSet[str] = frozenset(
    {
        "NULL",
        "TRUE",
        "FALSE",
        "END",
        "CURRENT_DATE",
        "CURRENT_TIME",
        "CURRENT_TIMESTAMP",
        "CURRENT_USER",
    }
)

# Words that are never formatted as function calls, even when followed by "("
NEVER_FUNCTIONS: FrozenSet[str] = frozenset(
    {
        "ALL", "AND", "ANY", "AS", "BETWEEN", "CASE", "CHECK", "DEFAULT", "ELSE",
        "EXCEPT", "EXISTS", "FROM", "HAVING", "IN", "INTERSECT", "INTO", "JOIN",
        "KEY", "LIKE", "NOT", "ON", "OR", "OVER", "RECURSIVE", "REFERENCES",
        "RETURNING", "SELECT", "SET", "SOME", "TABLE", "THEN", "UNION", "UNIQUE",
        "USING", "VALUES", "WHEN", "WHERE", "WITH",
    }
)  # fmt: skip

# GROUP BY extensions written like function calls: ROLLUP(a, b)
GROUPING_FUNCTIONS: FrozenSet[str] = frozenset({"ROLLUP", "CUBE", "GROUPING SETS"})

# ============================================================================
# Dialect Tables
# ============================================================================

DIALECT_ALIASES: Dict[str, str] = {
    "sqlserver": "tsql",
    "mssql": "tsql",
    "microsoft_sql_server": "tsql",
    "sybase": "tsql",
    "postgresql": "postgres",
    "pg": "postgres",
    "mariadb": "mysql",
}

# sqlglot dialect name -> family of the curated extras below
DIALECT_FAMILIES: Dict[str, str] = {
    "tsql": "tsql",
    "fabric": "tsql",
    "oracle": "oracle",
    "postgres": "postgres",
    "redshift": "postgres",
    "materialize": "postgres",
    "risingwave": "postgres",
    "mysql": "mysql",
    "doris": "mysql",
    "starrocks": "mysql",
}

DIALECT_RESERVED_WORDS: Dict[str, FrozenSet[str]] = {
    "tsql": frozenset(
        {
            "APPLY", "CLUSTERED", "EXEC", "EXECUTE", "GO", "HOLDLOCK", "IDENTITY",
            "NOLOCK", "NONCLUSTERED", "NOWAIT", "OUTPUT", "PERCENT", "READPAST",
            "READUNCOMMITTED", "ROWLOCK", "TABLOCK", "TABLOCKX", "TOP", "UPDLOCK",
        }
    ),
    "oracle": frozenset(
        {
            "BODY", "LEVEL", "MATERIALIZED", "NOCYCLE", "PACKAGE", "PIVOT", "PRIOR",
            "PURGE", "ROWNUM", "SIBLINGS", "UNPIVOT",
        }
    ),
    "postgres": frozenset(
        {"ANALYZE", "CONFLICT", "ILIKE", "MATERIALIZED", "SIMILAR", "VERBOSE"}
    ),
    "mysql": frozenset(
        {
            "AUTO_INCREMENT", "DUPLICATE", "ENGINE", "IGNORE", "REGEXP", "RLIKE",
            "SEPARATOR", "STRAIGHT_JOIN",
        }
    ),
}  # fmt: skip

DIALECT_FUNCTIONS: Dict[str, FrozenSet[str]] = {
    "tsql": frozenset(
        {
            "CHARINDEX", "DATEADD", "DATEDIFF", "DATEPART", "GETDATE", "IIF",
            "ISNULL", "LEN", "NEWID", "OBJECT_ID", "SCOPE_IDENTITY", "STUFF",
        }
    ),
    "oracle": frozenset(
        {
            "ADD_MONTHS", "DECODE", "INSTR", "LISTAGG", "MONTHS_BETWEEN", "NVL",
            "NVL2", "SUBSTR", "SYS_CONTEXT", "TO_CHAR", "TO_DATE", "TO_NUMBER",
            "TRUNC",
        }
    ),
    "postgres": frozenset(
        {
            "ARRAY_AGG", "DATE_TRUNC", "GENERATE_SERIES", "JSONB_BUILD_OBJECT",
            "NOW", "REGEXP_REPLACE", "STRING_AGG", "TO_CHAR",
        }
    ),
    "mysql": frozenset(
        {
            "CONCAT_WS", "DATE_FORMAT", "GROUP_CONCAT", "IFNULL", "NOW",
            "STR_TO_DATE", "UNIX_TIMESTAMP",
        }
    ),
}  # fmt: skip


# ============================================================================
# Compound Keyword Trie
# ============================================================================


class CompoundTrie:
    """
    Word-level trie over compound keyword phrases.

    Each node maps the next upper-case word to a child node; `phrase` is set on
    nodes where a complete phrase ends. The lexer walks it as far as the input
    allows and keeps the last complete phrase, which gives a deterministic
    greedy longest match.
    """

    __slots__ = ("children", "phrase")

    def __init__(self, phrases: Iterable[str] = ()):
        self.children: Dict[str, "CompoundTrie"] = {}
        self.phrase: Optional[str] = None
        for phrase in phrases:
            self.add(phrase)

    def add(self, phrase: str) -> None:
        node = self
        for word in phrase.upper().split():
            node = node.children.setdefault(word, CompoundTrie())
        node.phrase = " ".join(phrase.upper().split())

    def step(self, word: str) -> Optional["CompoundTrie"]:
        """Child node for the next word, or None"""
        return self.children.get(word.upper())

    def longest_match(self, words: Iterable[str]) -> Optional[str]:
        """Longest phrase that is a prefix of `words`."""
        node: Optional[CompoundTrie] = self
        best = None
        for word in words:
            node = node.step(word)
            if node is None:
                break
            if node.phrase is not None:
                best = node.phrase
        return best


# ============================================================================
# Registry
# ============================================================================


class KeywordRegistry:
    """
    Immutable keyword tables for one dialect.

    Example:
        registry = get_registry("tsql")
        registry.is_reserved("nolock")  # True
        registry.is_function("getdate")  # True
    """

    def __init__(
        self,
        dialect: Optional[str],
        reserved_words: FrozenSet[str],
        functions: FrozenSet[str],
        data_types: FrozenSet[str],
        compounds: CompoundTrie,
    ):
        self.dialect = dialect
        self.reserved_words = reserved_words
        self.functions = functions
        self.data_types = data_types
        self.compounds = compounds

    def __repr__(self) -> str:
        return (
            f"KeywordRegistry(dialect={self.dialect!r}, "
            f"{len(self.reserved_words)} reserved, {len(self.functions)} functions)"
        )

    def is_reserved(self, word: str) -> bool:
        return word.upper() in self.reserved_words

    def is_function(self, word: str, extra: FrozenSet[str] = frozenset()) -> bool:
        upper = word.upper()
        if upper in NEVER_FUNCTIONS:
            return False
        return upper in self.functions or upper in extra

    def is_data_type(self, word: str) -> bool:
        return word.upper() in self.data_types


def normalize_dialect(dialect: Optional[str]) -> Optional[str]:
    """Lower-case a dialect hint and resolve well-known aliases."""
    if dialect is None:
        return None
    name = re.sub(r"[\s\-]+", "_", dialect.strip().lower())
    if not name:
        return None
    return DIALECT_ALIASES.get(name, name)


def _plain_words(words: Iterable[str]) -> Set[str]:
    return {word for word in words if isinstance(word, str) and _PLAIN_WORD.match(word)}


def _load_dialect(name: str) -> Optional[Dialect]:
    try:
        return Dialect.get_or_raise(name)
    except ValueError:
        logger.warning("Unknown SQL dialect %r, using generic keywords", name)
        return None


def _type_words(tokenizer_keywords: Dict, type_tokens: Iterable) -> Set[str]:
    type_tokens = set(type_tokens)
    return _plain_words(word for word, token_type in tokenizer_keywords.items() if token_type in type_tokens)


@lru_cache(maxsize=None)
def get_registry(dialect: Optional[str] = None) -> KeywordRegistry:
    """
    Build (or fetch the cached) keyword registry for a dialect hint.

    Args:
        dialect: Optional dialect name ("tsql", "oracle", "postgres", ...).
            Unknown names log a warning and yield the generic registry.

    Returns:
        KeywordRegistry shared by every caller using the same hint
    """
    name = normalize_dialect(dialect)

    reserved: Set[str] = set(BASE_RESERVED_WORDS)
    functions: Set[str] = set(BASE_FUNCTIONS) | _plain_words(Parser.FUNCTIONS)
    data_types: Set[str] = set(BASE_DATA_TYPES) | _type_words(Tokenizer.KEYWORDS, Parser.TYPE_TOKENS)

    if name is not None:
        family = DIALECT_FAMILIES.get(name, name)
        reserved |= DIALECT_RESERVED_WORDS.get(family, frozenset())
        functions |= DIALECT_FUNCTIONS.get(family, frozenset())

        sqlglot_dialect = _load_dialect(name)
        if sqlglot_dialect is not None:
            tokenizer_class = sqlglot_dialect.tokenizer_class
            parser_class = sqlglot_dialect.parser_class
            dialect_types = _type_words(tokenizer_class.KEYWORDS, parser_class.TYPE_TOKENS)
            reserved |= _plain_words(tokenizer_class.KEYWORDS) - _plain_words(Tokenizer.KEYWORDS)
            functions |= _plain_words(parser_class.FUNCTIONS)
            data_types |= dialect_types
            logger.debug("Loaded keyword tables for dialect %s", name)

    return KeywordRegistry(
        dialect=name,
        reserved_words=frozenset(reserved),
        functions=frozenset(functions),
        data_types=frozenset(data_types),
        compounds=CompoundTrie(COMPOUND_KEYWORDS),
    )


__all__ = [
    "BASE_RESERVED_WORDS",
    "BASE_FUNCTIONS",
    "BASE_DATA_TYPES",
    "COMPOUND_KEYWORDS",
    "OPERAND_KEYWORDS",
    "NEVER_FUNCTIONS",
    "GROUPING_FUNCTIONS",
    "DIALECT_ALIASES",
    "DIALECT_FAMILIES",
    "DIALECT_RESERVED_WORDS",
    "DIALECT_FUNCTIONS",
    "CompoundTrie",
    "KeywordRegistry",
    "normalize_dialect",
    "get_registry",
]
