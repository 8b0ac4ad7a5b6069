import logging
import sys
from typing import Optional

from errors import SqlFileError


SQL_FILE_ENCODINGS = ['utf-8-sig', 'utf-8', 'gbk']
MAX_SQL_LOG_LENGTH = 100


def getLogger(name, file_name=None, use_formatter=True, level=logging.INFO):
    """
    获取带控制台输出（以及可选文件输出）的日志器

    重复调用同一个 name 不会重复挂载 handler。

    Args:
        name: 日志器名称，None 表示根日志器
        file_name: 日志文件路径，为空时只输出到控制台
        use_formatter: 文件日志是否带时间和名称前缀
        level: 日志级别
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)
    if getattr(logger, '_schedule_handlers_ready', False):
        return logger

    console_handler = logging.StreamHandler(sys.stdout)
    formatter = logging.Formatter('%(asctime)s    %(message)s')
    console_handler.setFormatter(formatter)
    console_handler.setLevel(level)
    logger.addHandler(console_handler)
    if file_name:
        handler = logging.FileHandler(file_name, encoding='utf8')
        handler.setLevel(level)
        if use_formatter:
            formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
            handler.setFormatter(formatter)
        logger.addHandler(handler)
    logger._schedule_handlers_ready = True
    return logger


def read_sql_file(file_path: str) -> str:
    """
    读取 SQL 文件内容，依次尝试 utf-8-sig / utf-8 / gbk 编码
    :param file_path: SQL 文件路径
    :return: SQL 文件内容字符串
    :raises: SqlFileError 文件不存在、不可读或无法解码
    """
    last_error: Optional[Exception] = None
    for encoding in SQL_FILE_ENCODINGS:
        try:
            with open(file_path, 'r', encoding=encoding) as f:
                return f.read()
        except FileNotFoundError:
            raise SqlFileError(file_path, f"SQL file not found: {file_path}")
        except UnicodeDecodeError as e:
            last_error = e
            continue
        except OSError as e:
            raise SqlFileError(file_path, f"Cannot read SQL file {file_path}: {e}")
    raise SqlFileError(file_path, f"Cannot decode SQL file {file_path}: {last_error}")


def truncate_sql(sql: str, max_length: int = MAX_SQL_LOG_LENGTH) -> str:
    """截断 SQL 语句，便于写入日志"""
    if sql is None:
        return ''
    if len(sql) > max_length:
        return sql[:max_length] + '...'
    return sql
