import pytest

from dialect_adapter import DbType
from error_policy import Policy
from errors import DatabaseConnectionError, RollbackError, StatementExecutionError, TransactionError
from result_logger import ResultLogger
from schedule import SqlSchedule, SqlTask


class FakeConnection:
    """记录调用过程的假连接，SQL 中包含 fail_on 里的任一片段时执行失败"""

    def __init__(self, fail_on=(), fail_commit=False, fail_begin=False, fail_rollback=False):
        self.fail_on = tuple(fail_on)
        self.fail_commit = fail_commit
        self.fail_begin = fail_begin
        self.fail_rollback = fail_rollback
        self.executed = []
        self.isolated = []
        self.begins = 0
        self.commits = 0
        self.rollbacks = 0
        self.closed = False

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    def execute(self, sql, isolate=False):
        self.executed.append(sql)
        self.isolated.append(isolate)
        if any(marker in sql for marker in self.fail_on):
            raise StatementExecutionError(sql, RuntimeError(f"rejected: {sql}"))
        return 1

    def begin(self):
        if self.fail_begin:
            raise TransactionError("Begin transaction failed: fake")
        self.begins += 1

    def commit(self):
        if self.fail_commit:
            raise TransactionError("Commit failed: fake")
        self.commits += 1

    def rollback(self):
        self.rollbacks += 1
        if self.fail_rollback:
            raise RollbackError("Rollback failed: fake")

    def close(self):
        self.closed = True


class FakeConnectionProvider:

    def __init__(self, connection=None, error=None):
        self.connection = connection or FakeConnection()
        self.error = error
        self.calls = []

    def open(self, db_type, db_url, db_user=None, db_password=None):
        self.calls.append((db_type, db_url, db_user, db_password))
        if self.error is not None:
            raise self.error
        return self.connection


def make_schedule(tasks, policy=None, db_type=DbType.SQLITE, db_url='jdbc:sqlite::memory:', name='demo'):
    """
    构造调度

    Args:
        tasks: [(任务名, sql 列表)] 或 [(任务名, sql 列表, 任务策略)]
    """
    task_list = []
    for task in tasks:
        task_name, sql_list = task[0], task[1]
        task_policy = Policy.from_value(task[2]) if len(task) > 2 else None
        task_list.append(SqlTask(task_name=task_name, sql_list=list(sql_list), policy_when_error=task_policy))
    return SqlSchedule(
        schedule_name=name,
        policy_when_error=Policy.from_value(policy),
        db_type=db_type,
        db_url=db_url,
        task_list=task_list,
    )


@pytest.fixture
def result_file(tmp_path):
    return str(tmp_path / 'result.txt')


@pytest.fixture
def result_logger(result_file):
    return ResultLogger(result_file)


@pytest.fixture
def fake_connection():
    return FakeConnection()


@pytest.fixture
def fake_provider(fake_connection):
    return FakeConnectionProvider(fake_connection)


@pytest.fixture
def unreachable_provider():
    return FakeConnectionProvider(error=DatabaseConnectionError("Cannot connect: fake"))
