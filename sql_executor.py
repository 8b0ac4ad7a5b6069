"""
SQL 调度执行器

两阶段执行：
1. 校验阶段：按顺序校验所有任务的全部语句（包括 .sql 文件中的语句），不连接数据库
2. 执行阶段：打开一个连接，逐个任务在独立事务中执行校验通过的语句

状态流转: IDLE -> VALIDATING -> CONNECTING -> EXECUTING -> DONE，
VALIDATING / CONNECTING / EXECUTING 都可能转入 FAILED。

失败策略:
- 校验失败: 任务生效策略为 stop 时整个运行立即失败，不会打开连接；continue 时丢弃该语句
- 语句执行失败: 任务生效策略为 stop 时回滚事务、任务失败；continue 时记录错误后继续同一事务
- 任务失败: 调度策略为 stop 时整个运行失败，不再执行后续任务；continue 时继续下一个任务
- 事务控制失败（begin/commit/rollback）: 整个运行失败，与策略无关

语句没有超时和取消机制，长时间运行的语句会一直阻塞本次运行。
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

from db_connector import ConnectionProvider, DbConnection, QueryResult
from error_policy import Policy, resolve_policy
from errors import (
    ConfigurationError,
    DatabaseConnectionError,
    RollbackError,
    ScheduleFormatError,
    SqlFileError,
    SqlValidationEnvironmentError,
    StatementExecutionError,
    TransactionError,
)
from result_logger import DEFAULT_RESULT_FILE, ResultLogger
from schedule import (
    PHASE_EXECUTE,
    PHASE_PARSE,
    RESULT_FAIL,
    RESULT_SUCCESS,
    ExecutionOutcome,
    SqlSchedule,
    SqlTask,
    ValidatedStatement,
    is_sql_file_reference,
    parse_json_file,
    resolve_sql_file_path,
)
from sql_splitter import read_sql_file_statements
from sql_validator import validate_statement
from utils import truncate_sql

logger = logging.getLogger(__name__)


class RunState(Enum):
    IDLE = 'idle'
    VALIDATING = 'validating'
    CONNECTING = 'connecting'
    EXECUTING = 'executing'
    DONE = 'done'
    FAILED = 'failed'


@dataclass
class RunSummary:
    tasks_attempted: int = 0
    tasks_failed: int = 0
    statements_valid: int = 0
    statements_invalid: int = 0
    statements_executed: int = 0
    statements_failed: int = 0


class ScheduleExecutor:
    """
    调度执行器

    Args:
        result_logger: 结果记录器，作用域为一次运行
        connection_provider: 连接提供者，默认按数据库类型打开真实连接
        empty_task_is_failure: 校验后没有任何可执行语句的任务是否按失败处理；
            默认跳过且不算失败（仍计入已尝试任务数）
    """

    def __init__(self, result_logger: ResultLogger, connection_provider: Optional[ConnectionProvider] = None,
                 empty_task_is_failure: bool = False):
        self.result_logger = result_logger
        self.connection_provider = connection_provider or ConnectionProvider()
        self.empty_task_is_failure = empty_task_is_failure
        self.state = RunState.IDLE
        self.summary = RunSummary()

    def run(self, schedule: SqlSchedule) -> bool:
        """
        执行调度

        Returns:
            True - 所有任务都已尝试且没有触发 stop 策略
            False - 运行失败（详细结果见结果文件）
        Raises:
            ConfigurationError: 缺少数据库类型或连接地址
            SqlValidationEnvironmentError: 解析器出现非语法类的意外错误
        """
        self.state = RunState.IDLE
        self.summary = RunSummary()
        self.result_logger.init()

        name = schedule.schedule_name
        logger.info(f"执行SQL调度: {name}")
        self._check_configuration(schedule)

        if not schedule.task_list:
            logger.warning("调度中没有任务")
            self.result_logger.record_schedule(name, "No tasks found")
            self.state = RunState.DONE
            return True

        try:
            validated_tasks = self._validate_schedule(schedule)
        except SqlValidationEnvironmentError as e:
            logger.error(f"SQL校验环境错误: {e}")
            self.result_logger.record_schedule(name, str(e))
            self.state = RunState.FAILED
            self._log_summary(name)
            raise
        if validated_tasks is None:
            self._log_summary(name)
            return False

        success = self._execute_schedule(schedule, validated_tasks)
        self._log_summary(name)
        return success

    # ==================== 配置检查 ====================

    def _check_configuration(self, schedule: SqlSchedule) -> None:
        missing = []
        if schedule.db_type is None:
            missing.append('dbType')
        if not schedule.db_url or not schedule.db_url.strip():
            missing.append('dbUrl')
        if missing:
            error_msg = f"Configuration error: {', '.join(missing)} not specified"
            logger.error(error_msg)
            self.result_logger.record_schedule(schedule.schedule_name, error_msg)
            self.state = RunState.FAILED
            raise ConfigurationError(error_msg)

    # ==================== 第一阶段：校验 ====================

    def _validate_schedule(self, schedule: SqlSchedule) -> Optional[List[List[ValidatedStatement]]]:
        """
        校验所有任务

        Returns:
            每个任务校验通过的语句列表；某个 stop 策略任务校验失败时返回 None
        """
        self.state = RunState.VALIDATING
        name = schedule.schedule_name
        logger.info("校验所有SQL语句...")
        self.result_logger.record_schedule(name, "Starting SQL validation")

        validated_tasks = []
        for task in schedule.task_list:
            validated, stopped = self._validate_task(schedule, task)
            if stopped:
                logger.error(f"任务 {task.task_name} 校验失败且策略为 stop，停止执行")
                self.result_logger.record_schedule(name, "Execution stopped due to validation failures")
                self.state = RunState.FAILED
                return None
            validated_tasks.append(validated)

        logger.info("SQL校验完成，正在连接数据库...")
        self.result_logger.record_schedule(name, "SQL validation completed. Connecting to database...")
        return validated_tasks

    def _validate_task(self, schedule: SqlSchedule, task: SqlTask) -> Tuple[List[ValidatedStatement], bool]:
        """
        校验单个任务的 sqlList，展开 .sql 文件引用

        Returns:
            (校验通过的语句列表, 是否因 stop 策略中止)
        """
        name = schedule.schedule_name
        policy = resolve_policy(task.policy_when_error, schedule.policy_when_error)
        logger.info(f"校验任务: {task.task_name}")
        self.result_logger.record_task(name, task.task_name, "Starting validation")

        validated: List[ValidatedStatement] = []
        for entry in task.sql_list:
            if not entry or not entry.strip():
                continue

            source = None
            if is_sql_file_reference(entry):
                source = resolve_sql_file_path(entry, schedule)
                self.result_logger.record_task(name, task.task_name, f"Reading SQL file: {entry.strip()}")
                try:
                    statements = read_sql_file_statements(source, schedule.db_type)
                except SqlFileError as e:
                    logger.error(f"读取SQL文件失败: {entry.strip()}: {e}")
                    self.summary.statements_invalid += 1
                    self._record(schedule, task, entry.strip(), PHASE_PARSE, RESULT_FAIL, str(e))
                    if policy is Policy.STOP:
                        return validated, True
                    continue
            else:
                statements = [entry.strip()]

            for statement in statements:
                result = validate_statement(statement, schedule.db_type, source=source)
                if result is not None:
                    self.summary.statements_valid += 1
                    self._record(schedule, task, statement, PHASE_PARSE, RESULT_SUCCESS)
                    validated.append(result)
                    continue

                logger.warning(f"SQL语法不合法: {truncate_sql(statement)}")
                self.summary.statements_invalid += 1
                self._record(schedule, task, statement, PHASE_PARSE, RESULT_FAIL, "Invalid SQL syntax")
                if policy is Policy.STOP:
                    return validated, True

        self.result_logger.record_task(
            name, task.task_name, f"Validation completed with {len(validated)} valid statements"
        )
        return validated, False

    # ==================== 第二阶段：执行 ====================

    def _execute_schedule(self, schedule: SqlSchedule, validated_tasks: List[List[ValidatedStatement]]) -> bool:
        name = schedule.schedule_name
        schedule_policy = resolve_policy(None, schedule.policy_when_error)

        self.state = RunState.CONNECTING
        try:
            connection = self.connection_provider.open(
                schedule.db_type, schedule.db_url, schedule.db_user, schedule.db_password
            )
        except DatabaseConnectionError as e:
            logger.error(f"数据库连接失败: {e}")
            self.result_logger.record_schedule(name, f"Database connection error: {e}")
            self.state = RunState.FAILED
            return False
        except ConfigurationError as e:
            logger.error(f"数据库配置错误: {e}")
            self.result_logger.record_schedule(name, f"Configuration error: {e}")
            self.state = RunState.FAILED
            raise

        with connection:
            self.state = RunState.EXECUTING
            for task, statements in zip(schedule.task_list, validated_tasks):
                self.summary.tasks_attempted += 1

                if statements:
                    try:
                        task_ok = self._execute_task(schedule, task, connection, statements)
                    except TransactionError:
                        self.summary.tasks_failed += 1
                        self.result_logger.record_schedule(name, "Execution stopped due to transaction error")
                        self.state = RunState.FAILED
                        return False
                else:
                    logger.info(f"任务 {task.task_name} 没有可执行的语句，跳过")
                    self.result_logger.record_task(name, task.task_name, "No validated statements, skipped")
                    task_ok = not self.empty_task_is_failure

                if task_ok:
                    continue
                self.summary.tasks_failed += 1
                if schedule_policy is Policy.STOP:
                    logger.error(f"任务 {task.task_name} 执行失败且调度策略为 stop，停止执行")
                    self.result_logger.record_schedule(name, "Execution stopped due to task execution failure")
                    self.state = RunState.FAILED
                    return False

        self.result_logger.record_schedule(name, "Execution completed successfully")
        self.state = RunState.DONE
        return True

    def _execute_task(self, schedule: SqlSchedule, task: SqlTask, connection: DbConnection,
                      statements: List[ValidatedStatement]) -> bool:
        """
        在一个事务中执行任务的全部语句

        Returns:
            True - 事务已提交
            False - stop 策略下语句失败，事务已回滚
        Raises:
            TransactionError: 事务控制失败（回滚本身失败时不再重试）
        """
        name = schedule.schedule_name
        logger.info(f"执行任务: {task.task_name}")
        self.result_logger.record_task(name, task.task_name, "Starting execution")

        try:
            return self._run_statements(schedule, task, connection, statements)
        except TransactionError as e:
            logger.error(f"事务错误: {e}")
            self.result_logger.record_task(name, task.task_name, f"Transaction error: {e}")
            if isinstance(e, RollbackError):
                raise
            try:
                connection.rollback()
            except RollbackError as rollback_error:
                logger.error(f"回滚失败: {rollback_error}")
                self.result_logger.record_task(name, task.task_name, f"Rollback error: {rollback_error}")
            raise

    def _run_statements(self, schedule: SqlSchedule, task: SqlTask, connection: DbConnection,
                        statements: List[ValidatedStatement]) -> bool:
        name = schedule.schedule_name
        policy = resolve_policy(task.policy_when_error, schedule.policy_when_error)

        connection.begin()
        for statement in statements:
            logger.debug(f"执行SQL: {statement.sql}")
            try:
                result = connection.execute(statement.sql, isolate=policy is Policy.CONTINUE)
            except StatementExecutionError as e:
                logger.error(f"SQL执行错误: {truncate_sql(statement.sql)}: {e}")
                self.summary.statements_failed += 1
                self._record(schedule, task, statement.sql, PHASE_EXECUTE, RESULT_FAIL, str(e))
                if policy is Policy.STOP:
                    connection.rollback()
                    self.result_logger.record_task(name, task.task_name, "Transaction rolled back")
                    return False
                continue

            self.summary.statements_executed += 1
            if isinstance(result, QueryResult):
                self._record(schedule, task, statement.sql, PHASE_EXECUTE, RESULT_SUCCESS,
                             f"rows returned: {len(result.rows)}")
                self.result_logger.record_query_result(result.columns, result.rows)
            else:
                self._record(schedule, task, statement.sql, PHASE_EXECUTE, RESULT_SUCCESS,
                             f"rows affected: {result}")

        connection.commit()
        self.result_logger.record_task(name, task.task_name, "Execution completed successfully")
        return True

    # ==================== 辅助 ====================

    def _record(self, schedule: SqlSchedule, task: SqlTask, sql: str, phase: str, result: str,
                detail: str = '') -> None:
        self.result_logger.record_outcome(ExecutionOutcome(
            schedule_name=schedule.schedule_name,
            task_name=task.task_name,
            sql=truncate_sql(sql),
            phase=phase,
            result=result,
            detail=detail,
        ))

    def _log_summary(self, schedule_name: str) -> None:
        summary = self.summary
        logger.info("=" * 70)
        logger.info(f"调度 {schedule_name} 结束，状态: {self.state.value}")
        logger.info(f"任务: 已尝试 {summary.tasks_attempted}，失败 {summary.tasks_failed}")
        logger.info(f"语句: 校验通过 {summary.statements_valid}，校验失败 {summary.statements_invalid}，"
                    f"执行成功 {summary.statements_executed}，执行失败 {summary.statements_failed}")
        logger.info("=" * 70)


def execute_schedule_from_json(json_path: str, result_file: Optional[str] = None,
                               connection_provider: Optional[ConnectionProvider] = None,
                               empty_task_is_failure: bool = False) -> bool:
    """
    读取调度 JSON 文件并执行

    结果文件优先使用 result_file 参数，其次是调度中的 resultFilePath，最后是 result.txt。
    JSON 解析失败时也会写入结果文件。

    Returns:
        执行是否成功
    Raises:
        ConfigurationError: 缺少数据库类型或连接地址
    """
    try:
        schedule = parse_json_file(json_path)
    except ScheduleFormatError as e:
        logger.error(f"解析JSON文件失败: {json_path}: {e}")
        result_logger = ResultLogger(result_file or DEFAULT_RESULT_FILE)
        result_logger.init()
        result_logger.record(f"ERROR: Failed to parse JSON file: {json_path}")
        result_logger.record(f"Error message: {e}")
        return False

    result_logger = ResultLogger(result_file or schedule.result_file_path or DEFAULT_RESULT_FILE)
    executor = ScheduleExecutor(result_logger, connection_provider, empty_task_is_failure)
    return executor.run(schedule)
