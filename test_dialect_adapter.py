import pytest

from dialect_adapter import (
    DIALECT_PROFILES,
    DbType,
    backslash_escape,
    first_keyword,
    get_escape_strategy,
    get_profile,
    is_dialect_directive,
    normalize,
    recognize_constructs,
    standard_escape,
)
from errors import ConfigurationError, ScheduleFormatError


@pytest.mark.parametrize('value, expected', [
    ('mysql', DbType.MYSQL),
    ('PostgreSQL', DbType.POSTGRESQL),
    (' gaussdb ', DbType.GAUSSDB),
    ('SQLITE', DbType.SQLITE),
    (DbType.MYSQL, DbType.MYSQL),
    (None, None),
    ('', None),
])
def test_db_type_from_value(value, expected):
    assert DbType.from_value(value) is expected


def test_db_type_unsupported():
    with pytest.raises(ScheduleFormatError):
        DbType.from_value('oracle')


def test_every_db_type_has_profile():
    assert set(DIALECT_PROFILES) == set(DbType)
    for db_type, profile in DIALECT_PROFILES.items():
        assert profile.db_type is db_type


def test_get_profile():
    assert get_profile(DbType.MYSQL).sqlglot_dialect == 'mysql'
    assert get_profile('gaussdb').sqlglot_dialect == 'gaussdb'
    assert get_profile(DbType.POSTGRESQL).uses_savepoints
    assert not get_profile(DbType.SQLITE).uses_savepoints


def test_get_profile_without_db_type():
    with pytest.raises(ConfigurationError):
        get_profile(None)


def test_escape_strategies():
    """反斜杠规则和标准 SQL 规则"""
    text = "'a\\'b'"
    assert backslash_escape(text, 3)
    assert not backslash_escape(text, 0)
    assert not standard_escape(text, 3)

    assert get_escape_strategy() is backslash_escape
    assert get_escape_strategy(DbType.MYSQL) is backslash_escape
    assert get_escape_strategy(DbType.POSTGRESQL) is standard_escape
    assert get_escape_strategy(DbType.GAUSSDB) is standard_escape
    assert get_escape_strategy(DbType.SQLITE) is standard_escape


@pytest.mark.parametrize('db_type', [DbType.POSTGRESQL, DbType.GAUSSDB])
@pytest.mark.parametrize('sql', [
    'SELECT "User Name" FROM "orders"',
    'SELECT "a""b" FROM t',
    "SELECT 'say \"hi\"' FROM t",
])
def test_normalize_double_quoted_identifiers_round_trip(sql, db_type):
    """双引号标识符重新渲染后与原文一致，单引号字符串不受影响"""
    assert normalize(sql, db_type) == sql


def test_normalize_unterminated_identifier_returns_input():
    sql = 'SELECT "broken FROM t'
    assert normalize(sql, DbType.POSTGRESQL) == sql


@pytest.mark.parametrize('db_type', [DbType.MYSQL, DbType.SQLITE])
def test_normalize_identity_dialects(db_type):
    sql = "SELECT `id`, \"name\" FROM users WHERE note = 'x'"
    assert normalize(sql, db_type) == sql


def test_normalize_empty():
    assert normalize('', DbType.MYSQL) == ''


@pytest.mark.parametrize('db_type, sql, construct', [
    (DbType.MYSQL, "INSERT INTO t VALUES (1) ON DUPLICATE KEY UPDATE a = 1", 'on_duplicate_key_update'),
    (DbType.MYSQL, "CREATE TABLE t (id INT AUTO_INCREMENT) ENGINE=InnoDB", 'storage_engine'),
    (DbType.MYSQL, "SELECT `id` FROM t", 'backtick_identifier'),
    (DbType.POSTGRESQL, "SELECT a::int FROM t", 'type_cast'),
    (DbType.POSTGRESQL, "INSERT INTO t VALUES (1) ON CONFLICT DO NOTHING", 'on_conflict'),
    (DbType.GAUSSDB, "CREATE TABLE t (a VARCHAR2(10))", 'varchar2'),
    (DbType.GAUSSDB, "SELECT a FROM t1 MINUS SELECT a FROM t2", 'minus'),
    (DbType.GAUSSDB, "CREATE TABLE t (a INT) DISTRIBUTE BY HASH(a)", 'distribute_by'),
    (DbType.GAUSSDB, "SELECT a::text FROM t", 'type_cast'),
    (DbType.SQLITE, "INSERT OR REPLACE INTO t VALUES (1)", 'insert_or_conflict'),
    (DbType.SQLITE, "CREATE TABLE t (id INTEGER PRIMARY KEY AUTOINCREMENT)", 'autoincrement'),
])
def test_recognize_constructs(db_type, sql, construct):
    assert construct in recognize_constructs(sql, db_type)


def test_recognize_constructs_plain_sql():
    assert recognize_constructs("SELECT a FROM t", DbType.MYSQL) == []
    assert recognize_constructs("", DbType.MYSQL) == []


def test_first_keyword():
    assert first_keyword("  select * from t") == 'SELECT'
    assert first_keyword("") == ''
    assert first_keyword("(SELECT 1)") == ''


def test_dialect_directive_only_for_sqlite():
    """PRAGMA 只在 SQLite 中是方言指令"""
    assert is_dialect_directive("PRAGMA foreign_keys = ON", DbType.SQLITE)
    assert is_dialect_directive("vacuum", DbType.SQLITE)
    assert not is_dialect_directive("SELECT 1", DbType.SQLITE)
    assert not is_dialect_directive("PRAGMA foreign_keys = ON", DbType.POSTGRESQL)
    assert not is_dialect_directive("PRAGMA foreign_keys = ON", DbType.MYSQL)
