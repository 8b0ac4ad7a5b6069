"""
SQL 文本预处理：去除注释、拆分语句

扫描器在四种互斥状态之间切换：普通、单行注释、块注释、字符串。
字符串内部的注释符号和分号都不生效。

拆分优先交给 sqlglot（按方言分词并完整解析，然后在分号 token 的位置切开原文），
sqlglot 解析失败时退回到按分号拆分的扫描器。两种方式对标准 SQL 得到的语句数一致。
"""

import logging
from typing import List, Optional

from sqlglot.dialects.dialect import Dialect
from sqlglot.errors import ParseError, TokenError
from sqlglot.tokens import TokenType

from dialect_adapter import DbType, get_escape_strategy, get_profile
from utils import read_sql_file

logger = logging.getLogger(__name__)

QUOTE_CHARS = ("'", '"')


def _glues_into_marker(result: List[str], sql: str, idx: int) -> bool:
    """删除块注释后，前后字符是否会拼成新的注释起始符或被转义的引号"""
    if not result or idx >= len(sql):
        return False
    pair = result[-1] + sql[idx]
    return pair in ('--', '/*') or (result[-1] == '\\' and sql[idx] in QUOTE_CHARS)


def strip_comments(sql: str, db_type: Optional[DbType] = None) -> str:
    """
    移除 SQL 中的单行注释（--）和块注释（/* */）

    - 单行注释结束处的换行符保留，行号不变
    - 块注释连同定界符整体删除，不留替代字符；
      只有删除后会拼出新的注释起始符时才补一个空格，保证结果幂等
    - 字符串内的注释符号原样保留

    Args:
        sql: 原始 SQL 文本
        db_type: 数据库类型，决定引号转义规则；为空时使用反斜杠规则
    Returns:
        去除注释后的 SQL 文本
    """
    if not sql:
        return sql

    is_escaped = get_escape_strategy(db_type)
    result: List[str] = []
    in_line_comment = False
    in_block_comment = False
    string_char = None
    idx = 0
    length = len(sql)

    while idx < length:
        ch = sql[idx]
        nxt = sql[idx + 1] if idx + 1 < length else ""

        if in_line_comment:
            if ch == "\n" or ch == "\r":
                in_line_comment = False
                result.append(ch)
            idx += 1
            continue

        if in_block_comment:
            if ch == "*" and nxt == "/":
                in_block_comment = False
                idx += 2
                if _glues_into_marker(result, sql, idx):
                    result.append(" ")
                continue
            idx += 1
            continue

        if string_char:
            result.append(ch)
            if ch == string_char and not is_escaped(sql, idx):
                string_char = None
            idx += 1
            continue

        if ch in QUOTE_CHARS and not is_escaped(sql, idx):
            string_char = ch
            result.append(ch)
            idx += 1
            continue

        if ch == "-" and nxt == "-":
            in_line_comment = True
            idx += 2
            continue

        if ch == "/" and nxt == "*":
            in_block_comment = True
            idx += 2
            continue

        result.append(ch)
        idx += 1

    return "".join(result)


def split_by_semicolon(sql_text: str, db_type: Optional[DbType] = None) -> List[str]:
    """
    按分号拆分 SQL（sqlglot 解析失败时的备选方案）

    扫描时跟踪字符串状态，字符串内的分号不会触发拆分。
    """
    statements: List[str] = []
    if not sql_text:
        return statements

    is_escaped = get_escape_strategy(db_type)
    buffer: List[str] = []
    string_char = None

    def flush_buffer() -> None:
        statement = "".join(buffer).strip()
        if statement:
            statements.append(statement)
        buffer.clear()

    for idx, ch in enumerate(sql_text):
        if string_char:
            if ch == string_char and not is_escaped(sql_text, idx):
                string_char = None
        elif ch in QUOTE_CHARS and not is_escaped(sql_text, idx):
            string_char = ch
        elif ch == ";":
            flush_buffer()
            continue
        buffer.append(ch)

    flush_buffer()
    return statements


def _split_with_sqlglot(sql_text: str, db_type: Optional[DbType] = None) -> List[str]:
    """
    用 sqlglot 分词并完整解析，再按分号 token 的位置切开原文

    返回的是原始文本片段，不是 sqlglot 重新生成的 SQL。

    Raises:
        ParseError / TokenError: sqlglot 无法解析
    """
    dialect = Dialect.get_or_raise(get_profile(db_type).sqlglot_dialect if db_type else None)
    tokens = dialect.tokenize(sql_text)
    dialect.parser().parse(tokens, sql_text)

    statements: List[str] = []
    start = 0
    for token in tokens:
        if token.token_type == TokenType.SEMICOLON:
            statement = sql_text[start:token.start].strip()
            if statement:
                statements.append(statement)
            start = token.end + 1
    statement = sql_text[start:].strip()
    if statement:
        statements.append(statement)
    return statements


def split_sql_statements(sql_text: str, db_type: Optional[DbType] = None) -> List[str]:
    """
    将包含多条语句的 SQL 文本拆分为语句列表

    先去除注释；语句两端空白被裁剪，空语句被丢弃，结尾分号不保留。

    Args:
        sql_text: 包含多个 SQL 语句的文本
        db_type: 数据库类型
    Returns:
        按原文顺序排列的语句列表
    """
    if not sql_text or not sql_text.strip():
        return []

    text = strip_comments(sql_text, db_type).strip()
    if not text:
        return []

    try:
        return _split_with_sqlglot(text, db_type)
    except (ParseError, TokenError) as e:
        logger.debug(f"sqlglot 拆分失败，改用分号拆分: {e}")
        return split_by_semicolon(text, db_type)


def read_sql_file_statements(file_path: str, db_type: Optional[DbType] = None) -> List[str]:
    """
    读取 SQL 文件，去除注释并拆分为语句列表

    Raises:
        SqlFileError: 文件读取失败
    """
    content = read_sql_file(file_path)
    return split_sql_statements(content, db_type)
