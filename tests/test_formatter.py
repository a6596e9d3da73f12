"""
Tests for the SQL formatter.

Clause keywords start at the statement indent, SELECT lists align after
"SELECT " and joins are indented by two.
"""

import logging

import pytest

from sqlwright import JoinWrapStyle, SqlFormatter, StyleConfig, format_sql


def fmt(sql, **options):
    max_line_width = options.pop("max_line_width", 60)
    dialect = options.pop("dialect", None)
    return format_sql(sql, max_line_width=max_line_width, dialect=dialect, style=StyleConfig(**options))


class TestSelectList:
    """Column lists wrap after max_columns_select items"""

    def test_short_list_on_one_line(self):
        assert fmt("select a,b,c from mytable", max_columns_select=5) == "SELECT a, b, c\nFROM mytable"

    def test_list_wraps_after_threshold(self):
        result = fmt("select a,b,c,d,e,f,g,h,i from mytable", max_columns_select=5)
        assert result == "SELECT a, b, c, d, e,\n       f, g, h, i\nFROM mytable"

    def test_three_then_two(self):
        result = fmt("select a, b, c, d, e from t", max_columns_select=3)
        assert result == "SELECT a, b, c,\n       d, e\nFROM t"

    def test_default_one_per_line(self):
        result = format_sql("select a, b, [MyCol] from mytable")
        assert result == "SELECT a,\n       b,\n       [MyCol]\nFROM mytable"

    def test_qualified_names_and_aliases(self):
        result = format_sql("select t1.a, t2.b from bla as t1, t2")
        assert result == "SELECT t1.a,\n       t2.b\nFROM bla AS t1,\n     t2"


class TestCommaModes:
    def test_trailing_comma_by_default(self):
        assert format_sql("select a, b from t") == "SELECT a,\n       b\nFROM t"

    def test_leading_comma(self):
        result = fmt("select a, b, c from t", comma_after_line_break=True)
        assert result == "SELECT a\n       ,b\n       ,c\nFROM t"

    def test_leading_comma_with_space(self):
        result = fmt("select a, b from t", comma_after_line_break=True, space_after_line_break_comma=True)
        assert result == "SELECT a\n       , b\nFROM t"

    def test_in_list_comma_space(self):
        assert fmt("select a from t where x in (1,2,3)") == "SELECT a\nFROM t\nWHERE x IN (1,2,3)"
        result = fmt("select a from t where x in (1,2,3)", space_after_in_list_comma=True)
        assert result == "SELECT a\nFROM t\nWHERE x IN (1, 2, 3)"


class TestClauses:
    def test_comment_then_statement(self):
        assert format_sql("--comment\nselect * from blub;") == "--comment\nSELECT *\nFROM blub;"

    def test_union(self):
        result = format_sql("select x from y union all select y from x")
        assert result == "SELECT x\nFROM y\nUNION ALL\nSELECT y\nFROM x"

    def test_where_conditions_aligned(self):
        result = format_sql("select x,y,z from y where a = 1 and b = 2")
        assert result == "SELECT x,\n       y,\n       z\nFROM y\nWHERE a = 1\nAND   b = 2"

    def test_where_conditions_right_aligned(self):
        result = fmt("select a from t where x = 1 and y = 2 or z = 3", indent_where_conditions=True)
        assert result == "SELECT a\nFROM t\nWHERE x = 1\n  AND y = 2\n   OR z = 3"

    def test_group_and_order_by(self):
        result = format_sql("select a, count(*) from t group by a, b order by a")
        assert result == "SELECT a,\n       COUNT(*)\nFROM t\nGROUP BY a,\n         b\nORDER BY a"

    def test_case_expression(self):
        result = format_sql("select a, case when x = 1 then 2 else 3 end as y from t")
        assert result == (
            "SELECT a,\n"
            "       CASE\n"
            "         WHEN x = 1 THEN 2\n"
            "         ELSE 3\n"
            "       END AS y\n"
            "FROM t"
        )

    def test_rollup_and_cube_are_written_like_calls(self):
        result = format_sql("select a, b from t group by rollup(a, b)")
        assert result == "SELECT a,\n       b\nFROM t\nGROUP BY ROLLUP(a,b)"
        assert format_sql("select a from t group by cube(a, b)") == "SELECT a\nFROM t\nGROUP BY CUBE(a,b)"

    def test_grouping_sets(self):
        result = format_sql("select a from t group by grouping sets ((a), (b))")
        assert result == "SELECT a\nFROM t\nGROUP BY GROUPING SETS((a),(b))"


class TestDecode:
    """DECODE puts each search/result pair on its own line"""

    def test_pairs_aligned_after_parenthesis(self):
        result = format_sql("select DECODE(col1, 'a', 1, 'b', 2, 'c', 3, 99) from t")
        assert result == (
            "SELECT DECODE(col1,\n"
            "              'a',1,\n"
            "              'b',2,\n"
            "              'c',3,\n"
            "              99\n"
            "       )\n"
            "FROM t"
        )

    def test_nested_first_argument(self):
        result = format_sql("select DECODE((MOD(x - 4, 12) + 1), 1, 'RAT', 2, 'OX', 3, 'TIGER') yr from t")
        assert result == (
            "SELECT DECODE((MOD(x - 4,12) + 1),\n"
            "              1,'RAT',\n"
            "              2,'OX',\n"
            "              3,'TIGER'\n"
            "       ) yr\n"
            "FROM t"
        )

    def test_in_list_comma_space(self):
        result = fmt("select DECODE(c, 'a', 1, 0) from t", space_after_in_list_comma=True)
        assert result == "SELECT DECODE(c,\n              'a', 1,\n              0\n       )\nFROM t"

    def test_inline_subselect_keeps_decode_on_one_line(self):
        result = format_sql("select a from t where b = (select DECODE(c, 1, 2) from u)")
        assert result == "SELECT a\nFROM t\nWHERE b = (SELECT DECODE(c,1,2) FROM u)"


class TestJoins:
    """ON conditions follow join_wrap_style"""

    SQL = "select * from foo join bar on foo.id = bar.fid and foo.id2 = bar.fid2"

    def test_multiple_conjuncts_wrap(self):
        assert format_sql(self.SQL) == (
            "SELECT *\nFROM foo\n  JOIN bar\n    ON foo.id = bar.fid\n   AND foo.id2 = bar.fid2"
        )

    def test_single_conjunct_stays_on_join_line(self):
        result = format_sql("select * from foo join bar on foo.id = bar.fid")
        assert result == "SELECT *\nFROM foo\n  JOIN bar ON foo.id = bar.fid"

    def test_always_wrap(self):
        result = fmt("select * from foo join bar on foo.id = bar.fid", join_wrap_style=JoinWrapStyle.ALWAYS)
        assert result == "SELECT *\nFROM foo\n  JOIN bar\n    ON foo.id = bar.fid"

    def test_never_wrap(self):
        result = fmt(self.SQL, join_wrap_style="none")
        assert result == "SELECT *\nFROM foo\n  JOIN bar ON foo.id = bar.fid AND foo.id2 = bar.fid2"

    def test_connectors_right_aligned_to_join_keyword(self):
        result = format_sql("select * from a left join b on a.id = b.id and a.x = b.x")
        assert result == "SELECT *\nFROM a\n  LEFT JOIN b\n         ON a.id = b.id\n        AND a.x = b.x"


class TestSubselects:
    SQL = "select x from y where a = 1 and b = (select min(x) from y)"

    def test_short_subselect_inline(self):
        result = format_sql(self.SQL, max_line_width=100)
        assert result == "SELECT x\nFROM y\nWHERE a = 1\nAND   b = (SELECT MIN(x) FROM y)"

    def test_long_subselect_expanded_at_paren_column(self):
        result = format_sql(self.SQL, max_line_width=10)
        assert result == "SELECT x\nFROM y\nWHERE a = 1\nAND   b = (SELECT MIN(x)\n           FROM y)"

    def test_subselect_in_select_list(self):
        result = format_sql("select a, b, (select a, b from t2) col4 from t1")
        assert result == "SELECT a,\n       b,\n       (SELECT a, b FROM t2) col4\nFROM t1"

    def test_new_line_for_subselects(self):
        result = fmt(
            "select foo from (select id, foo from some_table where some_flag) t where id > 1",
            new_line_for_subselects=True,
        )
        assert result == (
            "SELECT foo\n"
            "FROM (\n"
            "  SELECT id,\n"
            "         foo\n"
            "  FROM some_table\n"
            "  WHERE some_flag\n"
            ") t\n"
            "WHERE id > 1"
        )

    def test_line_comment_forces_expansion(self):
        result = format_sql("select a from t where x in (select b -- note\n from u)")
        assert "-- note\n" in result
        assert result.endswith("FROM u)")


class TestDml:
    def test_update(self):
        result = format_sql("update x set (a,b) = (select x, y from k);")
        assert result == "UPDATE x\n   SET (a,b) = (SELECT x, y FROM k);"

    def test_update_set_list(self):
        result = format_sql("update t set a = 1, b = 2 where c = 3")
        assert result == "UPDATE t\n   SET a = 1,\n       b = 2\nWHERE c = 3"

    def test_delete(self):
        assert format_sql("delete from t where x = 1") == "DELETE FROM t\nWHERE x = 1"

    def test_insert_tuples_on_one_line(self):
        result = fmt("insert into x (col1,col2,col3) values (1,2,3)", max_columns_insert=3)
        assert result == "INSERT INTO x\n  (col1, col2, col3)\nVALUES\n  (1, 2, 3)"

    def test_insert_bracket_blocks(self):
        result = fmt("insert into x (col1,col2,col3) values (1,2,3)", max_columns_insert=1)
        assert result == "INSERT INTO x\n(\n  col1,\n  col2,\n  col3\n)\nVALUES\n(\n  1,\n  2,\n  3\n)"

    def test_insert_tuple_wraps(self):
        result = fmt("insert into x (a,b,c) values (1,2,3)", max_columns_insert=2)
        assert result == "INSERT INTO x\n  (a, b,\n   c)\nVALUES\n  (1, 2,\n   3)"

    def test_insert_column_name_comments(self):
        result = fmt("insert into x (a, b) values (1, 2)", max_columns_insert=3, add_column_name_comments=True)
        assert result == "INSERT INTO x\n  (a, b)\nVALUES\n  (/* a */ 1, /* b */ 2)"

    @pytest.mark.parametrize("threshold", [1, 3])
    def test_column_name_comments_not_repeated(self, threshold):
        once = fmt("insert into x (a, b) values (1, 2)", max_columns_insert=threshold, add_column_name_comments=True)
        twice = fmt(once, max_columns_insert=threshold, add_column_name_comments=True)
        assert twice == once
        assert once.count("/* a */") == 1

    def test_column_name_comments_in_bracket_blocks(self):
        result = fmt("insert into x (a, b) values (1, 2)", add_column_name_comments=True)
        assert result == "INSERT INTO x\n(\n  a,\n  b\n)\nVALUES\n(\n  /* a */ 1,\n  /* b */ 2\n)"

    def test_insert_select(self):
        result = format_sql("insert into t (a, b) select a, b from s")
        assert result == "INSERT INTO t\n(\n  a,\n  b\n)\nSELECT a,\n       b\nFROM s"

    def test_merge(self):
        result = format_sql("merge into t using s on t.id = s.id when matched then update set v = s.v")
        assert result == "MERGE INTO t\nUSING s ON t.id = s.id\nWHEN MATCHED THEN UPDATE\n  SET v = s.v"


class TestDdl:
    def test_cte(self):
        result = format_sql("with x as (select a from t) select a from x")
        assert result == "WITH x AS\n(\n  SELECT a\n  FROM t\n)\nSELECT a\nFROM x"

    def test_create_view(self):
        result = format_sql("create or replace view v as select a from t")
        assert result == "CREATE OR REPLACE VIEW v\nAS\nSELECT a\nFROM t"

    def test_create_table(self):
        result = format_sql("create table t (id integer not null, name varchar(20), primary key (id))")
        assert result == (
            "CREATE TABLE t\n"
            "(\n"
            "  id     INTEGER NOT NULL,\n"
            "  name   VARCHAR(20),\n"
            "  PRIMARY KEY (id)\n"
            ")"
        )

    def test_grant(self):
        assert format_sql("grant select, insert on t to bob") == "GRANT SELECT, INSERT\n  ON t\n  TO bob"

    def test_unknown_statement_passes_through(self):
        sql = "ALTER TABLE epg_value ADD CONSTRAINT fk_value_attr FOREIGN KEY (id_attribute) REFERENCES attribute(id);"
        assert format_sql(sql) == sql


class TestCasing:
    def test_keyword_case_lower(self):
        assert fmt("SELECT A FROM T", keyword_case="lower") == "select A\nfrom T"

    def test_keyword_case_as_is_collapses_whitespace(self):
        result = fmt("Select a From t Order   By a", keyword_case="as_is")
        assert result == "Select a\nFrom t\nOrder By a"

    def test_identifier_case(self):
        assert fmt("select Abc from Tbl", identifier_case="lower") == "SELECT abc\nFROM tbl"

    def test_function_case(self):
        assert fmt("select COUNT(*) from t", function_case="lower") == "SELECT count(*)\nFROM t"

    def test_additional_function_names(self):
        assert fmt("select my_udf(a) from t") == "SELECT my_udf(a)\nFROM t"
        assert fmt("select my_udf(a) from t", additional_function_names={"my_udf"}) == "SELECT MY_UDF(a)\nFROM t"

    def test_data_types(self):
        result = format_sql("select cast(a as varchar(10)), b::int from t")
        assert result == "SELECT CAST(a AS VARCHAR(10)),\n       b::INT\nFROM t"

    def test_literals_untouched(self):
        result = fmt("select 'arthur''s house', \"MixedCase\", $[Param] from t", keyword_case="lower")
        assert result == "select 'arthur''s house',\n       \"MixedCase\",\n       $[Param]\nfrom t"

    def test_dialect_keywords(self):
        result = format_sql("select top 10 [id] from dbo.users with (nolock)", dialect="tsql")
        assert result == "SELECT TOP 10 [id]\nFROM dbo.users WITH (NOLOCK)"


class TestStatements:
    def test_statements_separated_by_blank_line(self):
        assert format_sql("select 1; select 2;") == "SELECT 1;\n\nSELECT 2;"

    def test_leading_whitespace_dropped(self):
        assert format_sql("\n\n   select 1") == "SELECT 1"

    def test_empty_input(self):
        assert format_sql("") == ""
        assert format_sql("  ;  ") == ""

    def test_line_comment_before_semicolon(self):
        result = format_sql("select a from t -- hi\n;\nselect b from u")
        assert result == "SELECT a\nFROM t -- hi\n;\n\nSELECT b\nFROM u"
        assert format_sql(result) == result

    def test_escaped_quote_preserved(self):
        assert format_sql("select 'arthur''s house' from t") == "SELECT 'arthur''s house'\nFROM t"

    def test_formatter_reusable(self):
        formatter = SqlFormatter(StyleConfig(max_columns_select=5))
        assert formatter.format("select a, b from t") == "SELECT a, b\nFROM t"
        assert formatter.format("select c from u") == "SELECT c\nFROM u"

    def test_style_mapping_accepted(self):
        formatter = SqlFormatter({"maxColumnsSelect": 5})
        assert formatter.style.max_columns_select == 5

    def test_invalid_style_type(self):
        with pytest.raises(TypeError, match="StyleConfig"):
            SqlFormatter(style=42)

    def test_non_string_input(self):
        with pytest.raises(TypeError, match="must be str"):
            format_sql(None)

    def test_width_clamped(self, caplog):
        with caplog.at_level(logging.WARNING, logger="sqlwright.formatter"):
            formatter = SqlFormatter(max_line_width=0)
        assert formatter.max_line_width == 1
        assert "clamping to 1" in caplog.text


MALFORMED = [
    "select ((( from",
    "))) select a",
    "select 'unterminated",
    "select a from t where",
    "select case when a then b from t",
    "insert into",
    "with x as select 1",
    "merge into t",
    "select /* open comment",
    "update t",
    ",,,;;;",
]

WELL_FORMED = [
    "select a,b,c from mytable",
    "select x from y union all select y from x",
    "select * from foo join bar on foo.id = bar.fid and foo.id2 = bar.fid2",
    "select a, case when x = 1 then 2 else 3 end as y from t",
    "select x from y where a = 1 and b = (select min(x) from y)",
    "insert into x (col1,col2,col3) values (1,2,3)",
    "update t set a = 1, b = 2 where c = 3",
    "with x as (select a from t) select a from x",
    "select a -- note\nfrom t",
    "select a, count(*) from t group by a order by a",
    "select DECODE(c, 1, 'x', 2, 'y', 'z') from t",
    "select a from t -- trailing\n;",
]


class TestProperties:
    """Properties that hold for every input"""

    @pytest.mark.parametrize("sql", MALFORMED)
    def test_never_raises(self, sql):
        assert isinstance(format_sql(sql), str)

    @pytest.mark.parametrize("sql", MALFORMED + WELL_FORMED)
    def test_no_trailing_whitespace(self, sql):
        for line in format_sql(sql).split("\n"):
            assert line == line.rstrip()

    @pytest.mark.parametrize("sql", WELL_FORMED)
    def test_idempotent(self, sql):
        once = format_sql(sql)
        assert format_sql(once) == once

    @pytest.mark.parametrize("sql", WELL_FORMED)
    def test_paren_balance(self, sql):
        result = format_sql(sql)
        assert result.count("(") == sql.count("(")
        assert result.count(")") == sql.count(")")

    def test_unbalanced_input_passes_through(self):
        assert format_sql("select (a from   t") == "SELECT (a FROM t"
