"""
数据库连接

ConnectionProvider 根据数据库类型和连接串打开 DB-API 连接，并包装为统一的
DbConnection 接口：execute / begin / commit / rollback / close。

支持的连接串形式：
- JDBC 风格: jdbc:mysql://host:3306/db, jdbc:postgresql://host:5432/db,
  jdbc:gaussdb://host:8000/db, jdbc:sqlite:/path/to/file.db
- 普通形式: mysql://host/db, postgresql://host/db, sqlite:///path/to/file.db,
  或者 SQLite 的文件路径本身
"""

import logging
import sqlite3
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Union
from urllib.parse import unquote, urlsplit

from dialect_adapter import DbType, get_profile
from errors import (
    ConfigurationError,
    DatabaseConnectionError,
    RollbackError,
    StatementExecutionError,
    TransactionError,
)

logger = logging.getLogger(__name__)

DEFAULT_PORTS = {
    DbType.MYSQL: 3306,
    DbType.POSTGRESQL: 5432,
    DbType.GAUSSDB: 8000,
}
SAVEPOINT_NAME = 'schedule_statement'


@dataclass
class QueryResult:
    columns: List[str] = field(default_factory=list)
    rows: List[Tuple] = field(default_factory=list)


def parse_db_url(db_type: DbType, db_url: str) -> Dict:
    """
    解析连接串

    Returns:
        SQLite: {'database': 文件路径}
        其他: {'host', 'port', 'database'}
    Raises:
        ConfigurationError: 连接串为空或无法解析
    """
    if not db_url or not db_url.strip():
        raise ConfigurationError("Database URL is not specified")
    url = db_url.strip()
    if url.lower().startswith('jdbc:'):
        url = url[5:]

    if db_type is DbType.SQLITE:
        if url.lower().startswith('sqlite:'):
            url = url[len('sqlite:'):]
            if url.startswith('//'):
                url = url[2:]
        if not url:
            raise ConfigurationError(f"Invalid SQLite URL: {db_url}")
        return {'database': url}

    parts = urlsplit(url)
    if not parts.hostname:
        raise ConfigurationError(f"Invalid database URL: {db_url}")
    try:
        port = parts.port or DEFAULT_PORTS.get(db_type)
    except ValueError:
        raise ConfigurationError(f"Invalid port in database URL: {db_url}")
    return {
        'host': parts.hostname,
        'port': port,
        'database': unquote(parts.path.lstrip('/')) or None,
    }


class DbConnection:
    """
    DB-API 连接的统一包装

    Args:
        raw: 驱动返回的连接对象
        db_type: 数据库类型
        driver_error: 驱动的基础异常类（sqlite3.Error / pymysql.MySQLError / psycopg2.Error）
        begin_statement: 显式开启事务的语句，None 表示由驱动隐式开启
    """

    def __init__(self, raw, db_type: DbType, driver_error=Exception, begin_statement: Optional[str] = None):
        self.raw = raw
        self.db_type = db_type
        self.driver_error = driver_error
        self.begin_statement = begin_statement
        self.uses_savepoints = get_profile(db_type).uses_savepoints

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    def execute(self, sql: str, isolate: bool = False) -> Union[QueryResult, int]:
        """
        执行一条语句

        Args:
            sql: SQL 语句
            isolate: 是否用保存点隔离本条语句（PostgreSQL 系列语句失败后事务不可继续使用）
        Returns:
            有结果集时返回 QueryResult，否则返回影响行数
        Raises:
            StatementExecutionError: 数据库拒绝执行
            TransactionError: 保存点回滚失败
        """
        use_savepoint = isolate and self.uses_savepoints
        cursor = self.raw.cursor()
        try:
            if use_savepoint:
                self._control(cursor, f'SAVEPOINT {SAVEPOINT_NAME}')
            try:
                cursor.execute(sql)
            except self.driver_error as e:
                if use_savepoint:
                    self._control(cursor, f'ROLLBACK TO SAVEPOINT {SAVEPOINT_NAME}')
                raise StatementExecutionError(sql, e) from e
            if cursor.description is not None:
                columns = [column[0] for column in cursor.description]
                rows = [tuple(row) for row in cursor.fetchall()]
                result = QueryResult(columns=columns, rows=rows)
            else:
                result = max(cursor.rowcount, 0)
            if use_savepoint:
                self._control(cursor, f'RELEASE SAVEPOINT {SAVEPOINT_NAME}')
            return result
        finally:
            cursor.close()

    def _control(self, cursor, statement: str) -> None:
        try:
            cursor.execute(statement)
        except self.driver_error as e:
            raise TransactionError(f"{statement} failed: {e}") from e

    def begin(self) -> None:
        try:
            if self.begin_statement:
                cursor = self.raw.cursor()
                try:
                    cursor.execute(self.begin_statement)
                finally:
                    cursor.close()
            elif hasattr(self.raw, 'begin'):
                self.raw.begin()
        except self.driver_error as e:
            raise TransactionError(f"Begin transaction failed: {e}") from e

    def commit(self) -> None:
        try:
            self.raw.commit()
        except self.driver_error as e:
            raise TransactionError(f"Commit failed: {e}") from e

    def rollback(self) -> None:
        try:
            self.raw.rollback()
        except self.driver_error as e:
            raise RollbackError(f"Rollback failed: {e}") from e

    def close(self) -> None:
        if self.raw is None:
            return
        try:
            self.raw.close()
        except self.driver_error as e:
            logger.warning(f"关闭数据库连接失败: {e}")
        finally:
            self.raw = None


class ConnectionProvider:
    """按数据库类型打开连接"""

    def open(self, db_type: DbType, db_url: str, db_user: Optional[str] = None,
             db_password: Optional[str] = None) -> DbConnection:
        """
        打开数据库连接

        Raises:
            ConfigurationError: 数据库类型或连接串缺失/无法解析
            DatabaseConnectionError: 驱动未安装或连接失败
        """
        if db_type is None:
            raise ConfigurationError("Database type is not specified")
        params = parse_db_url(db_type, db_url)

        if db_type is DbType.SQLITE:
            return self._open_sqlite(params)
        if db_type is DbType.MYSQL:
            return self._open_mysql(params, db_user, db_password)
        return self._open_postgres(db_type, params, db_user, db_password)

    def _open_sqlite(self, params: Dict) -> DbConnection:
        try:
            # isolation_level=None 关闭驱动的隐式事务，由 begin() 显式开启
            raw = sqlite3.connect(params['database'], isolation_level=None)
        except sqlite3.Error as e:
            raise DatabaseConnectionError(f"Cannot open SQLite database {params['database']}: {e}") from e
        return DbConnection(raw, DbType.SQLITE, driver_error=sqlite3.Error, begin_statement='BEGIN')

    def _open_mysql(self, params: Dict, db_user: Optional[str], db_password: Optional[str]) -> DbConnection:
        try:
            import pymysql
        except ImportError as e:
            raise DatabaseConnectionError("pymysql not installed. Please install it: pip install pymysql") from e
        try:
            raw = pymysql.connect(
                host=params['host'],
                port=params['port'],
                user=db_user,
                password=db_password or '',
                database=params['database'],
                charset='utf8mb4',
                autocommit=False,
            )
        except pymysql.MySQLError as e:
            raise DatabaseConnectionError(f"Cannot connect to MySQL {params['host']}:{params['port']}: {e}") from e
        return DbConnection(raw, DbType.MYSQL, driver_error=pymysql.MySQLError)

    def _open_postgres(self, db_type: DbType, params: Dict, db_user: Optional[str],
                       db_password: Optional[str]) -> DbConnection:
        try:
            import psycopg2
        except ImportError as e:
            raise DatabaseConnectionError("psycopg2 not installed. Please install it: pip install psycopg2-binary") from e
        try:
            raw = psycopg2.connect(
                host=params['host'],
                port=params['port'],
                dbname=params['database'],
                user=db_user,
                password=db_password,
            )
            raw.autocommit = False
        except psycopg2.Error as e:
            raise DatabaseConnectionError(
                f"Cannot connect to {db_type.value} {params['host']}:{params['port']}: {e}"
            ) from e
        return DbConnection(raw, db_type, driver_error=psycopg2.Error)
