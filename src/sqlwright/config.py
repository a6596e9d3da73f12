"""
Formatting style configuration.

StyleConfig is the caller-owned, read-only set of formatting preferences. It is
a frozen dataclass, so a single instance can be shared between threads and
passed to any number of format calls.

Every option has a default, so partial configuration never fails. Values that
are out of range (thresholds below 1) or not understood (unknown case names)
are corrected and logged rather than rejected.
"""

import logging
from dataclasses import MISSING, asdict, dataclass, field, fields, replace
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, Mapping, Optional, Union

logger = logging.getLogger(__name__)


# ============================================================================
# Option Enums
# ============================================================================


class KeywordCase(Enum):
    """How a class of words is recased"""

    UPPER = "upper"
    LOWER = "lower"
    AS_IS = "as_is"

    @classmethod
    def parse(cls, value: Union["KeywordCase", str]) -> "KeywordCase":
        """Accept enum members and names such as "upper", "asIs" or "as_is"."""
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower().replace("_", "").replace("-", "")
        for member in cls:
            if member.value.replace("_", "") == key:
                return member
        raise ValueError(f"Unknown case style: {value!r}")

    def apply(self, text: str) -> str:
        if self is KeywordCase.UPPER:
            return text.upper()
        if self is KeywordCase.LOWER:
            return text.lower()
        return text


class JoinWrapStyle(Enum):
    """When the ON condition of a join goes onto its own line"""

    NONE = "none"
    ONLY_MULTIPLE = "only_multiple"  # Only if the condition has several conjuncts
    ALWAYS = "always"

    @classmethod
    def parse(cls, value: Union["JoinWrapStyle", str]) -> "JoinWrapStyle":
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower().replace("_", "").replace("-", "")
        for member in cls:
            if member.value.replace("_", "") == key:
                return member
        raise ValueError(f"Unknown join wrap style: {value!r}")


# ============================================================================
# Style Configuration
# ============================================================================

_CASE_OPTIONS = ("keyword_case", "identifier_case", "function_case", "data_type_case")
_THRESHOLD_OPTIONS = ("max_columns_select", "max_columns_insert", "max_columns_update")
_FLAG_OPTIONS = (
    "comma_after_line_break",
    "space_after_line_break_comma",
    "space_after_in_list_comma",
    "new_line_for_subselects",
    "add_column_name_comments",
    "indent_where_conditions",
    "indent_insert",
)

# Preference-store property names (after the "sql.formatter." prefix)
_PROPERTY_NAMES: Dict[str, str] = {
    "keywords.case": "keyword_case",
    "identifier.case": "identifier_case",
    "functions.case": "function_case",
    "datatype.case": "data_type_case",
    "select.columnsperline": "max_columns_select",
    "insert.columnsperline": "max_columns_insert",
    "update.columnsperline": "max_columns_update",
    "comma.afterlinebreak": "comma_after_line_break",
    "comma.spaceafterlinebreakcomma": "space_after_line_break_comma",
    "comma.spaceafter": "space_after_in_list_comma",
    "subselect.newline": "new_line_for_subselects",
    "join.condition.wrapstyle": "join_wrap_style",
    "insert.values.columnname": "add_column_name_comments",
    "where.condition.indent": "indent_where_conditions",
    "insert.indent": "indent_insert",
    "catalog.separator": "catalog_separator_char",
    "functions.additional": "additional_function_names",
}

_PROPERTY_PREFIX = "sql.formatter."


@dataclass(frozen=True)
class StyleConfig:
    """
    Formatting preferences.

    Example:
        style = StyleConfig(max_columns_select=5, keyword_case="lower")
        style = StyleConfig.from_dict({"maxColumnsSelect": 5})
        style = style.with_options(comma_after_line_break=True)
    """

    # Recasing
    keyword_case: KeywordCase = KeywordCase.UPPER
    identifier_case: KeywordCase = KeywordCase.AS_IS
    function_case: KeywordCase = KeywordCase.UPPER
    data_type_case: KeywordCase = KeywordCase.UPPER

    # Items per line before a list wraps
    max_columns_select: int = 1
    max_columns_insert: int = 1
    max_columns_update: int = 1

    # Commas
    comma_after_line_break: bool = False  # Leading comma on the continuation line
    space_after_line_break_comma: bool = False
    space_after_in_list_comma: bool = False

    # Layout
    new_line_for_subselects: bool = False  # FROM/JOIN subqueries on their own block
    join_wrap_style: JoinWrapStyle = JoinWrapStyle.ONLY_MULTIPLE
    indent_where_conditions: bool = False  # Right-align AND/OR under WHERE
    indent_insert: bool = True  # Indent INSERT column and VALUES lists
    add_column_name_comments: bool = False  # /* column */ before each VALUES entry

    catalog_separator_char: str = "."
    additional_function_names: FrozenSet[str] = field(default_factory=frozenset)

    def __post_init__(self):
        defaults = _defaults()
        for name in _CASE_OPTIONS:
            value = getattr(self, name)
            try:
                object.__setattr__(self, name, KeywordCase.parse(value))
            except ValueError:
                logger.warning("Invalid %s %r, using %s", name, value, defaults[name].value)
                object.__setattr__(self, name, defaults[name])

        try:
            object.__setattr__(self, "join_wrap_style", JoinWrapStyle.parse(self.join_wrap_style))
        except ValueError:
            logger.warning("Invalid join_wrap_style %r, using only_multiple", self.join_wrap_style)
            object.__setattr__(self, "join_wrap_style", JoinWrapStyle.ONLY_MULTIPLE)

        for name in _THRESHOLD_OPTIONS:
            object.__setattr__(self, name, _clamp_threshold(name, getattr(self, name)))

        for name in _FLAG_OPTIONS:
            object.__setattr__(self, name, _to_bool(name, getattr(self, name), defaults[name]))

        separator = self.catalog_separator_char
        if not isinstance(separator, str) or len(separator) != 1:
            logger.warning("Invalid catalog_separator_char %r, using '.'", separator)
            object.__setattr__(self, "catalog_separator_char", ".")

        object.__setattr__(
            self,
            "additional_function_names",
            _to_name_set(self.additional_function_names),
        )

    # ------------------------------------------------------------------------
    # Construction helpers
    # ------------------------------------------------------------------------

    @classmethod
    def from_dict(cls, options: Optional[Mapping[str, Any]]) -> "StyleConfig":
        """
        Build a StyleConfig from a plain mapping.

        Accepts snake_case field names, their camelCase spelling, and
        preference-store property names such as
        "sql.formatter.select.columnsperline". Unknown keys are logged and
        ignored; missing keys keep their defaults.

        Args:
            options: Mapping of option name to value (strings are coerced)

        Returns:
            New StyleConfig
        """
        if not options:
            return cls()

        known = {f.name for f in fields(cls)}
        camel = {_camel_case(name).lower(): name for name in known}
        values: Dict[str, Any] = {}
        for key, value in options.items():
            name = _resolve_option_name(str(key), known, camel)
            if name is None:
                logger.warning("Ignoring unknown formatter option %r", key)
                continue
            values[name] = value
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        """Export the configuration as plain, JSON-compatible values."""
        result = asdict(self)
        for name in _CASE_OPTIONS + ("join_wrap_style",):
            result[name] = result[name].value
        result["additional_function_names"] = sorted(self.additional_function_names)
        return result

    def with_options(self, **changes: Any) -> "StyleConfig":
        """Copy of this configuration with some options replaced."""
        return replace(self, **changes)

    def is_additional_function(self, name: str) -> bool:
        return name.upper() in self.additional_function_names


# ============================================================================
# Helpers
# ============================================================================


def _defaults() -> Dict[str, Any]:
    return {f.name: f.default for f in fields(StyleConfig) if f.default is not MISSING}


def _camel_case(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def _resolve_option_name(key: str, known: Iterable[str], camel: Dict[str, str]) -> Optional[str]:
    if key in known:
        return key
    lowered = key.lower()
    if lowered in camel:
        return camel[lowered]
    prefix_at = lowered.find(_PROPERTY_PREFIX)
    if prefix_at >= 0:
        return _PROPERTY_NAMES.get(lowered[prefix_at + len(_PROPERTY_PREFIX) :])
    return None


def _clamp_threshold(name: str, value: Any) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        logger.warning("Invalid %s %r, using 1", name, value)
        return 1
    if number < 1:
        logger.warning("%s must be at least 1 (got %d), clamping to 1", name, number)
        return 1
    return number


def _to_bool(name: str, value: Any, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "yes", "1", "on"):
            return True
        if lowered in ("false", "no", "0", "off"):
            return False
    logger.warning("Invalid %s %r, using %s", name, value, default)
    return default


def _to_name_set(value: Any) -> FrozenSet[str]:
    if not value:
        return frozenset()
    if isinstance(value, str):
        value = value.replace(",", " ").split()
    return frozenset(str(name).strip().upper() for name in value if str(name).strip())


__all__ = [
    "KeywordCase",
    "JoinWrapStyle",
    "StyleConfig",
]
