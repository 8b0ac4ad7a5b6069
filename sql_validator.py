import logging
import re
from typing import Optional

import sqlglot
from sqlglot import exp
from sqlglot.errors import ErrorLevel, ParseError, TokenError

from dialect_adapter import DbType, DialectProfile, get_profile, is_dialect_directive, normalize
from errors import ConfigurationError, SqlValidationEnvironmentError
from schedule import ValidatedStatement

logger = logging.getLogger(__name__)

# 语句必须以这些关键字开头，只是廉价的预过滤，不能代替完整解析
SQL_KEYWORDS = (
    'SELECT', 'INSERT', 'UPDATE', 'DELETE', 'CREATE', 'DROP', 'ALTER',
    'TRUNCATE', 'MERGE', 'WITH', 'BEGIN', 'CALL', 'DECLARE',
)
SQL_KEYWORD_PATTERN = re.compile(r'^\s*(' + '|'.join(SQL_KEYWORDS) + r')\b', re.IGNORECASE)


def is_valid_sql(sql: Optional[str], db_type: Optional[DbType]) -> bool:
    """
    校验单条 SQL 语句的语法是否合法

    Args:
        sql: SQL 语句，None 或全空白视为不合法
        db_type: 数据库类型
    Returns:
        True - 语法合法
        False - 空语句、不以常见 SQL 关键字开头、或解析失败
    Raises:
        ConfigurationError: db_type 为空
        SqlValidationEnvironmentError: 解析器出现非语法类的意外错误
    """
    if sql is None or not sql.strip():
        return False
    if db_type is None:
        raise ConfigurationError("Database type cannot be None")

    profile = get_profile(db_type)
    sql = sql.strip()

    # 方言专有指令（如 SQLite 的 PRAGMA）通用语法不支持，直接视为合法
    if is_dialect_directive(sql, profile.db_type):
        return True

    if not SQL_KEYWORD_PATTERN.match(sql):
        return False

    return _parses_as_single_statement(normalize(sql, profile.db_type), profile)


def _parses_as_single_statement(sql: str, profile: DialectProfile) -> bool:
    try:
        expressions = sqlglot.parse(sql, read=profile.sqlglot_dialect, error_level=ErrorLevel.RAISE)
    except (ParseError, TokenError) as e:
        logger.debug(f"语法解析失败 ({profile.db_type.value}): {e}")
        return False
    except Exception as e:
        raise SqlValidationEnvironmentError(f"SQL validation error: {e}") from e

    statements = [expression for expression in expressions if expression is not None]
    if len(statements) != 1:
        return False
    statement = statements[0]
    # 孤立的标识符或表达式（如单独的 DECLARE）不是可执行语句
    if isinstance(statement, (exp.Condition, exp.Alias, exp.Identifier)):
        return False
    if isinstance(statement, exp.Command):
        return _is_allowed_command(statement, profile)
    return True


def _is_allowed_command(command: exp.Command, profile: DialectProfile) -> bool:
    """
    sqlglot 无法建模的语句会退化为 Command，只有命中方言白名单的写法才放行

    Args:
        command: 解析得到的 Command 节点
        profile: 当前方言配置
    Returns:
        True - 语句文本匹配方言允许的 Command 写法
    """
    verb = str(command.this or '').strip().upper()
    rest = command.expression
    if isinstance(rest, exp.Expression):
        rest = rest.name
    text = f"{verb} {(rest or '').strip()}".strip()

    for name, pattern in profile.command_patterns:
        if pattern.match(text):
            logger.debug(f"语句按 Command 放行 ({name}): {text[:50]}")
            return True
    logger.debug(f"未识别的 Command 语句 ({profile.db_type.value}): {text[:50]}")
    return False


def validate_statement(sql: str, db_type: DbType, source: Optional[str] = None) -> Optional[ValidatedStatement]:
    """
    校验语句并生成不可变的 ValidatedStatement

    Returns:
        校验通过返回 ValidatedStatement，否则返回 None
    """
    if not is_valid_sql(sql, db_type):
        return None
    statement = sql.strip()
    return ValidatedStatement(
        sql=statement,
        normalized_sql=normalize(statement, db_type),
        source=source,
    )
