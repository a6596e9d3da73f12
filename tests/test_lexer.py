"""
Tests for the SQL lexer.

Covers the lexical rules the formatter relies on:
- Exact round trip of the input through token text
- Compound keyword merging (greedy longest match)
- Literals, quoted identifiers and placeholders as atomic tokens
- Sign disambiguation for numeric literals
- Unterminated input never raising
"""

import pytest

from sqlwright import SQLLexer, TokenKind, TokenStream, tokenize


def significant(sql, dialect=None):
    return tokenize(sql, dialect).significant()


class TestRoundTrip:
    """Concatenated token text reproduces the input"""

    @pytest.mark.parametrize(
        "sql",
        [
            "select a,b,c from mytable",
            "SELECT 'arthur''s house' FROM t -- trailing\n",
            "select * from [dbo].[My Table] where x = $[param] /* note */;",
            "create\nor\nreplace view v as select 1",
            "select $$a body$$, :name, ?, $1 from t",
            "select 'unterminated",
            "",
            "  \n\t ",
        ],
    )
    def test_text_reproduces_input(self, sql):
        assert tokenize(sql).text == sql

    def test_non_string_source_raises_type_error(self):
        with pytest.raises(TypeError, match="must be str"):
            SQLLexer(b"select 1")


class TestCompoundKeywords:
    """Multi-word keywords become one token"""

    def test_create_or_replace_across_newlines(self):
        tokens = significant("create\nor\nreplace view v as select 1")
        assert tokens[0].kind == TokenKind.RESERVED_WORD
        assert tokens[0].contents == "CREATE OR REPLACE"
        assert tokens[0].text == "create\nor\nreplace"
        assert tokens[1].contents == "VIEW"

    def test_left_outer_join_is_one_token(self):
        tokens = significant("select * from a left   outer join b on a.id = b.id")
        joins = [t for t in tokens if t.contents.endswith("JOIN")]
        assert len(joins) == 1
        assert joins[0].contents == "LEFT OUTER JOIN"
        assert joins[0].is_compound_keyword

    def test_group_by_and_order_by(self):
        contents = [t.contents for t in significant("select a from t group by a order by a")]
        assert "GROUP BY" in contents
        assert "ORDER BY" in contents

    def test_union_all(self):
        contents = [t.contents for t in significant("select 1 union all select 2")]
        assert contents == ["SELECT", "1", "UNION ALL", "SELECT", "2"]

    def test_partial_phrase_falls_back_to_single_word(self):
        tokens = significant("select left(name, 3) from t")
        assert tokens[1].contents == "LEFT"
        assert not tokens[1].is_compound_keyword

    def test_outer_apply_without_dialect(self):
        contents = [t.contents for t in significant("select * from a outer apply f(a.id)")]
        assert "OUTER APPLY" in contents


class TestLiterals:
    """Strings, numbers and quoted identifiers"""

    def test_escaped_quote_stays_one_literal(self):
        tokens = significant("select 'arthur''s house' from t")
        assert tokens[1].kind == TokenKind.STRING_LITERAL
        assert tokens[1].text == "'arthur''s house'"

    def test_multiline_string(self):
        tokens = significant("select 'a\nb' from t")
        assert tokens[1].text == "'a\nb'"

    @pytest.mark.parametrize("literal", ["N'abc'", "E'a\\n'", "X'0F'", "U&'d\\0061t'"])
    def test_prefixed_strings(self, literal):
        tokens = significant(f"select {literal}")
        assert tokens[1].kind == TokenKind.STRING_LITERAL
        assert tokens[1].text == literal

    def test_dollar_quoted_body(self):
        tokens = significant("select $body$ it's raw $body$ as x")
        assert tokens[1].kind == TokenKind.STRING_LITERAL
        assert tokens[1].text == "$body$ it's raw $body$"

    @pytest.mark.parametrize("name", ['"My Col"', "[My Col]", "`My Col`"])
    def test_quoted_identifiers(self, name):
        tokens = significant(f"select {name} from t")
        assert tokens[1].kind == TokenKind.QUOTED_IDENTIFIER
        assert tokens[1].text == name

    def test_special_identifiers(self):
        tokens = significant("select @var, @@rowcount from #temp")
        assert [t.text for t in tokens if t.kind == TokenKind.IDENTIFIER] == ["@var", "@@rowcount", "#temp"]

    def test_numbers(self):
        tokens = significant("select 1, 2.5, .5, 1e10 from t")
        numbers = [t.text for t in tokens if t.kind == TokenKind.NUMBER_LITERAL]
        assert numbers == ["1", "2.5", ".5", "1e10"]


class TestSigns:
    """A sign belongs to a number only when no operand precedes it"""

    def test_negative_literal_after_operator(self):
        tokens = significant("select a from t where x = -1")
        assert tokens[-1].kind == TokenKind.NUMBER_LITERAL
        assert tokens[-1].text == "-1"

    def test_binary_minus_after_identifier(self):
        tokens = significant("select a-1 from t")
        assert [t.text for t in tokens[1:4]] == ["a", "-", "1"]
        assert tokens[2].kind == TokenKind.OPERATOR

    def test_binary_minus_after_closing_paren(self):
        tokens = significant("select (a)-1")
        assert tokens[-2].kind == TokenKind.OPERATOR
        assert tokens[-1].text == "1"


class TestPlaceholders:
    """Placeholders and bind variables are atomic"""

    @pytest.mark.parametrize("placeholder", ["$[name]", "$[&name]", "$[?name]", "${name}", ":name", "?", "$1"])
    def test_placeholder_forms(self, placeholder):
        tokens = significant(f"select a from t where x = {placeholder}")
        assert tokens[-1].kind == TokenKind.PLACEHOLDER
        assert tokens[-1].text == placeholder

    def test_double_colon_is_cast_operator(self):
        tokens = significant("select x::int from t")
        assert tokens[2].kind == TokenKind.OPERATOR
        assert tokens[2].text == "::"


class TestComments:
    """Comments are kept as tokens"""

    def test_line_comment_excludes_newline(self):
        tokens = tokenize("-- note\nselect 1")
        assert tokens[0].kind == TokenKind.COMMENT
        assert tokens[0].text == "-- note"
        assert tokens[1].is_whitespace

    def test_block_comment(self):
        tokens = significant("select /* a, b */ 1")
        assert tokens[1].is_comment
        assert tokens[1].text == "/* a, b */"

    def test_skip_comments(self):
        lexer = SQLLexer("select /* x */ 1")
        words = []
        while True:
            token = lexer.next_token(skip_whitespace=True, skip_comments=True)
            if token is None:
                break
            words.append(token.text)
        assert words == ["select", "1"]


class TestUnterminatedInput:
    """Malformed input runs to the end of the text instead of raising"""

    @pytest.mark.parametrize(
        "sql, kind",
        [
            ("select 'abc", TokenKind.STRING_LITERAL),
            ('select "abc', TokenKind.QUOTED_IDENTIFIER),
            ("select /* abc", TokenKind.COMMENT),
        ],
    )
    def test_last_token_runs_to_end(self, sql, kind):
        tokens = tokenize(sql)
        assert tokens[-1].kind == kind
        assert tokens[-1].end == len(sql)


class TestLexerState:
    """Restartable lexer and stream slicing"""

    def test_reset_rewinds(self):
        lexer = SQLLexer("select a from t")
        first = lexer.next_token()
        lexer.next_token()
        lexer.reset()
        assert lexer.next_token() == first

    def test_at_end(self):
        lexer = SQLLexer("x")
        assert not lexer.at_end
        lexer.next_token()
        assert lexer.at_end
        assert lexer.next_token() is None

    def test_slice_is_token_stream(self):
        stream = tokenize("select a from t")
        assert isinstance(stream[0:3], TokenStream)
        assert stream[0:3].text == "select a"

    def test_statements_split_at_semicolons(self):
        statements = tokenize("select 1; select 2").statements()
        assert len(statements) == 2
        assert statements[0][-1].kind == TokenKind.SEMICOLON
        assert statements[1].text == " select 2"

    def test_dialect_keywords(self):
        tokens = significant("select top 10 a from t with (nolock)", dialect="tsql")
        assert tokens[1].kind == TokenKind.RESERVED_WORD
        nolock = [t for t in tokens if t.text == "nolock"][0]
        assert nolock.kind == TokenKind.RESERVED_WORD
