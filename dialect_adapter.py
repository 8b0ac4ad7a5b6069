"""
数据库方言适配

每种数据库类型对应一份不可变的 DialectProfile：
- sqlglot_dialect: 校验/拆分时使用的 sqlglot 方言名
- normalize: 送入解析器前的文本规整函数（尽力而为，永不失败）
- escape_strategy: 字符串内引号的转义判断策略
- directive_keywords: 跳过通用语法校验的方言专有指令
- constructs: 只做识别不做改写的方言特性
- command_patterns: sqlglot 不建模、只能解析为 Command 但仍然放行的写法
- uses_savepoints: 语句失败后事务是否需要保存点才能继续使用
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Pattern, Tuple

from sqlglot import exp

from errors import ConfigurationError, ScheduleFormatError
from gaussdb_dialect import GAUSSDB_EXTENSION_KEYWORDS

logger = logging.getLogger(__name__)


class DbType(Enum):
    MYSQL = 'mysql'
    POSTGRESQL = 'postgresql'
    GAUSSDB = 'gaussdb'
    SQLITE = 'sqlite'

    @classmethod
    def from_value(cls, value) -> Optional['DbType']:
        """
        从调度文件中的 dbType 字段解析数据库类型（不区分大小写）

        Returns:
            DbType，value 为空时返回 None
        Raises:
            ScheduleFormatError: 不支持的数据库类型
        """
        if value is None or isinstance(value, DbType):
            return value
        text = str(value).strip().lower()
        if not text:
            return None
        try:
            return cls(text)
        except ValueError:
            raise ScheduleFormatError(f"Unsupported database type: {value}")


# ==================== 引号转义策略 ====================

def backslash_escape(text: str, index: int) -> bool:
    """
    引号前一个字符是反斜杠即视为被转义

    这是文本层面的启发式判断，并不是完整的方言转义解析，
    例如 '\\\\' 结尾的字符串会被误判。
    """
    return index > 0 and text[index - 1] == '\\'


def standard_escape(text: str, index: int) -> bool:
    """
    标准 SQL：反斜杠不是转义符

    '' 形式的双写引号由扫描器的“关闭后立即重新打开”自然处理。
    """
    return False


EscapeStrategy = Callable[[str, int], bool]


# ==================== 规整函数 ====================

def _rewrite_double_quoted_identifiers(sql: str, sqlglot_dialect: str) -> str:
    """
    把单引号字符串之外的双引号标识符重新渲染为解析器的中立引用形式

    标识符内部的 "" 先还原为 "，再交给 sqlglot 按目标方言重新加引号。
    遇到未闭合的双引号时原样返回。
    """
    out = []
    idx = 0
    length = len(sql)
    in_single = False

    while idx < length:
        ch = sql[idx]

        if in_single:
            out.append(ch)
            if ch == "'":
                in_single = False
            idx += 1
            continue

        if ch == "'":
            in_single = True
            out.append(ch)
            idx += 1
            continue

        if ch == '"':
            end = idx + 1
            name_chars = []
            closed = False
            while end < length:
                if sql[end] == '"':
                    if end + 1 < length and sql[end + 1] == '"':
                        name_chars.append('"')
                        end += 2
                        continue
                    closed = True
                    break
                name_chars.append(sql[end])
                end += 1
            if not closed:
                return sql
            identifier = exp.to_identifier(''.join(name_chars), quoted=True)
            out.append(identifier.sql(dialect=sqlglot_dialect))
            idx = end + 1
            continue

        out.append(ch)
        idx += 1

    return ''.join(out)


def _normalize_mysql(sql: str) -> str:
    # 反引号标识符、ON DUPLICATE KEY UPDATE、ENGINE= 等只识别不改写
    return sql


def _normalize_postgresql(sql: str) -> str:
    return _rewrite_double_quoted_identifiers(sql, 'postgres')


def _normalize_gaussdb(sql: str) -> str:
    # GaussDB 先继承 PostgreSQL 的全部处理，再识别自身扩展
    return _rewrite_double_quoted_identifiers(sql, 'gaussdb')


def _normalize_sqlite(sql: str) -> str:
    return sql


# ==================== 方言配置 ====================

def _patterns(*pairs: Tuple[str, str]) -> Tuple[Tuple[str, Pattern], ...]:
    return tuple((name, re.compile(pattern, re.IGNORECASE)) for name, pattern in pairs)


_POSTGRES_CONSTRUCTS = (
    ('double_quoted_identifier', r'"[^"]+"'),
    ('type_cast', r'::'),
    ('on_conflict', r'\bON\s+CONFLICT\b'),
    ('returning', r'\bRETURNING\b'),
    ('string_agg', r'\bSTRING_AGG\s*\('),
)

# sqlglot 只能退化为 Command 的语句中，允许放行的写法（按完整语句文本匹配）
_CALL_COMMAND = ('call', r'CALL\s+[A-Za-z_][\w$]*(\.[A-Za-z_][\w$]*)*\s*\(.*\)\s*;?\s*$')
_CREATE_ROUTINE_COMMAND = ('create_routine',
                           r'CREATE\s+(OR\s+REPLACE\s+)?(PROCEDURE|FUNCTION)\s+[\w$."`]+\s*\(')
_DECLARE_COMMAND = ('declare', r'DECLARE\s+[A-Za-z_]\w*\s+\S')


def _command_patterns(*pairs: Tuple[str, str]) -> Tuple[Tuple[str, Pattern], ...]:
    return tuple((name, re.compile(pattern, re.IGNORECASE | re.DOTALL)) for name, pattern in pairs)


@dataclass(frozen=True)
class DialectProfile:
    db_type: DbType
    sqlglot_dialect: str
    normalize: Callable[[str], str]
    escape_strategy: EscapeStrategy
    directive_keywords: Tuple[str, ...] = ()
    constructs: Tuple[Tuple[str, Pattern], ...] = ()
    command_patterns: Tuple[Tuple[str, Pattern], ...] = ()
    uses_savepoints: bool = False


DIALECT_PROFILES: Dict[DbType, DialectProfile] = {
    DbType.MYSQL: DialectProfile(
        db_type=DbType.MYSQL,
        sqlglot_dialect='mysql',
        normalize=_normalize_mysql,
        escape_strategy=backslash_escape,
        constructs=_patterns(
            ('backtick_identifier', r'`[^`]+`'),
            ('on_duplicate_key_update', r'\bON\s+DUPLICATE\s+KEY\s+UPDATE\b'),
            ('storage_engine', r'\bENGINE\s*='),
            ('auto_increment', r'\bAUTO_INCREMENT\b'),
            ('mysql_function', r'\b(GROUP_CONCAT|IFNULL|CONCAT_WS)\s*\('),
        ),
        command_patterns=_command_patterns(_CALL_COMMAND, _CREATE_ROUTINE_COMMAND),
    ),
    DbType.POSTGRESQL: DialectProfile(
        db_type=DbType.POSTGRESQL,
        sqlglot_dialect='postgres',
        normalize=_normalize_postgresql,
        escape_strategy=standard_escape,
        constructs=_patterns(*_POSTGRES_CONSTRUCTS),
        command_patterns=_command_patterns(_CALL_COMMAND, _CREATE_ROUTINE_COMMAND, _DECLARE_COMMAND),
        uses_savepoints=True,
    ),
    DbType.GAUSSDB: DialectProfile(
        db_type=DbType.GAUSSDB,
        sqlglot_dialect='gaussdb',
        normalize=_normalize_gaussdb,
        escape_strategy=standard_escape,
        constructs=_patterns(
            *_POSTGRES_CONSTRUCTS,
            *((kw.lower().replace(' ', '_'), r'\b' + kw.replace(' ', r'\s+') + r'\b')
              for kw in GAUSSDB_EXTENSION_KEYWORDS),
        ),
        command_patterns=_command_patterns(_CALL_COMMAND, _CREATE_ROUTINE_COMMAND, _DECLARE_COMMAND),
        uses_savepoints=True,
    ),
    DbType.SQLITE: DialectProfile(
        db_type=DbType.SQLITE,
        sqlglot_dialect='sqlite',
        normalize=_normalize_sqlite,
        escape_strategy=standard_escape,
        directive_keywords=('PRAGMA', 'VACUUM', 'ATTACH', 'DETACH', 'REINDEX'),
        constructs=_patterns(
            ('autoincrement', r'\bAUTOINCREMENT\b'),
            ('insert_or_conflict', r'\bINSERT\s+OR\s+(REPLACE|IGNORE|ABORT|FAIL|ROLLBACK)\b'),
            ('date_function', r'\b(DATE|TIME|DATETIME|JULIANDAY)\s*\('),
        ),
    ),
}


def get_profile(db_type: DbType) -> DialectProfile:
    """
    获取数据库类型对应的方言配置

    Raises:
        ConfigurationError: db_type 为空或不受支持
    """
    if db_type is None:
        raise ConfigurationError("Database type cannot be None")
    profile = DIALECT_PROFILES.get(DbType.from_value(db_type))
    if profile is None:
        raise ConfigurationError(f"Unsupported database type: {db_type}")
    return profile


def get_escape_strategy(db_type: Optional[DbType] = None) -> EscapeStrategy:
    """未指定方言时使用反斜杠转义规则"""
    if db_type is None:
        return backslash_escape
    return get_profile(db_type).escape_strategy


def recognize_constructs(statement: str, db_type: DbType) -> List[str]:
    """
    识别语句中的方言专有写法，返回特性名称列表

    识别结果目前只用于日志，为以后按方言制定接受/拒绝策略预留。
    """
    if not statement:
        return []
    profile = get_profile(db_type)
    found = [name for name, pattern in profile.constructs if pattern.search(statement)]
    if found:
        logger.debug(f"{profile.db_type.value} 方言特性: {', '.join(found)}")
    return found


def normalize(statement: str, db_type: DbType) -> str:
    """
    按方言规整语句，供语法校验使用

    规整只是尽力而为的文本转换，处理不了的写法原样返回，
    最终是否合法完全由语法校验器决定。
    """
    if not statement:
        return statement
    profile = get_profile(db_type)
    recognize_constructs(statement, profile.db_type)
    return profile.normalize(statement)


def first_keyword(statement: str) -> str:
    """返回语句的第一个单词（大写），空语句返回空字符串"""
    if not statement:
        return ''
    match = re.match(r'\s*([A-Za-z_]+)', statement)
    return match.group(1).upper() if match else ''


def is_dialect_directive(statement: str, db_type: DbType) -> bool:
    """语句是否以方言专有指令开头（如 SQLite 的 PRAGMA）"""
    profile = get_profile(db_type)
    return bool(profile.directive_keywords) and first_keyword(statement) in profile.directive_keywords
