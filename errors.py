"""
调度执行过程中使用的异常类型

- ConfigurationError: 缺少数据库类型或连接参数，运行前直接失败
- ScheduleFormatError: 调度文件无法读取或格式不正确
- SqlFileError: 引用的 .sql 文件不存在或不可读，按校验失败处理
- SqlValidationEnvironmentError: 解析器出现非语法类的意外错误
- DatabaseConnectionError: 无法建立数据库连接
- StatementExecutionError: 数据库拒绝执行某条语句
- TransactionError: 开启/提交/回滚事务失败，整个运行终止
- RollbackError: 回滚失败（TransactionError 的子类）

所有异常都不做自动重试，重试只能通过重新执行整个调度完成。
"""


class ScheduleExecutorError(Exception):
    """调度执行器的基础异常"""
    pass


class ConfigurationError(ScheduleExecutorError):
    """配置错误（缺少数据库类型、连接地址等），不可恢复"""
    pass


class ScheduleFormatError(ScheduleExecutorError):
    """调度文件格式错误"""
    pass


class SqlFileError(ScheduleExecutorError):
    """SQL 文件读取失败"""

    def __init__(self, file_path: str, message: str):
        super().__init__(message)
        self.file_path = file_path


class SqlValidationEnvironmentError(ScheduleExecutorError):
    """SQL 校验过程中出现的非语法错误（解析器本身异常）"""
    pass


class DatabaseConnectionError(ScheduleExecutorError):
    """数据库连接失败"""
    pass


class StatementExecutionError(ScheduleExecutorError):
    """
    单条 SQL 执行失败

    Attributes:
        sql: 执行失败的语句
        cause: 驱动抛出的原始异常
    """

    def __init__(self, sql: str, cause: Exception):
        super().__init__(str(cause))
        self.sql = sql
        self.cause = cause


class TransactionError(ScheduleExecutorError):
    """事务控制（begin/commit/rollback）失败"""
    pass


class RollbackError(TransactionError):
    """事务回滚本身失败，连接状态未知，不再重复回滚"""
    pass
