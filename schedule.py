"""
调度定义的数据模型及 JSON 读写

调度文件格式:
{
    "scheduleName": "...",
    "policyWhenError": "stop" | "continue",
    "dbType": "mysql" | "postgresql" | "gaussdb" | "sqlite",
    "dbUrl": "...", "dbUser": "...", "dbPassword": "...",
    "resultFilePath": "result.txt",
    "taskList": [
        {"taskName": "...", "policyWhenError": "stop", "sqlList": ["SELECT 1", "path/to/file.sql"]}
    ]
}
"""

import json
import os
from dataclasses import dataclass, field
from typing import Dict, IO, List, Optional

from dialect_adapter import DbType
from error_policy import Policy
from errors import ScheduleFormatError

PHASE_PARSE = 'parse'
PHASE_EXECUTE = 'execute'
RESULT_SUCCESS = 'success'
RESULT_FAIL = 'fail'


@dataclass
class SqlTask:
    task_name: str
    sql_list: List[str] = field(default_factory=list)
    policy_when_error: Optional[Policy] = None


@dataclass
class SqlSchedule:
    schedule_name: str
    policy_when_error: Optional[Policy] = None
    db_type: Optional[DbType] = None
    db_url: Optional[str] = None
    db_user: Optional[str] = None
    db_password: Optional[str] = None
    result_file_path: Optional[str] = None
    task_list: List[SqlTask] = field(default_factory=list)
    # 调度文件所在目录，用于解析相对路径的 .sql 文件，不写回 JSON
    source_dir: Optional[str] = None


@dataclass(frozen=True)
class ValidatedStatement:
    sql: str
    normalized_sql: str
    source: Optional[str] = None


@dataclass(frozen=True)
class ExecutionOutcome:
    schedule_name: str
    task_name: str
    sql: str
    phase: str
    result: str
    detail: str = ''


def is_sql_file_reference(entry: str) -> bool:
    """sqlList 中以 .sql 结尾的条目是文件引用"""
    return bool(entry) and entry.strip().lower().endswith('.sql')


def resolve_sql_file_path(entry: str, schedule: SqlSchedule) -> str:
    """
    解析 .sql 文件路径：绝对路径或当前目录下存在的相对路径直接使用，
    否则相对调度文件所在目录查找
    """
    path = entry.strip()
    if os.path.isabs(path) or os.path.exists(path) or not schedule.source_dir:
        return path
    return os.path.join(schedule.source_dir, path)


def _require_str(data: Dict, key: str, required: bool = False) -> Optional[str]:
    value = data.get(key)
    if value is None:
        if required:
            raise ScheduleFormatError(f"Missing required field: {key}")
        return None
    if not isinstance(value, str):
        raise ScheduleFormatError(f"Field {key} must be a string")
    return value


def _task_from_dict(data: Dict) -> SqlTask:
    if not isinstance(data, dict):
        raise ScheduleFormatError("Each taskList entry must be an object")
    sql_list = data.get('sqlList')
    if sql_list is None:
        sql_list = []
    if not isinstance(sql_list, list) or not all(isinstance(sql, str) for sql in sql_list):
        raise ScheduleFormatError("sqlList must be a list of strings")
    return SqlTask(
        task_name=_require_str(data, 'taskName') or '',
        sql_list=list(sql_list),
        policy_when_error=Policy.from_value(data.get('policyWhenError')),
    )


def schedule_from_dict(data: Dict) -> SqlSchedule:
    """
    将调度文件的字典结构转换为 SqlSchedule

    Raises:
        ScheduleFormatError: 字段类型或取值不合法
    """
    if not isinstance(data, dict):
        raise ScheduleFormatError("Schedule document must be a JSON object")
    task_list = data.get('taskList')
    if task_list is None:
        task_list = []
    if not isinstance(task_list, list):
        raise ScheduleFormatError("taskList must be a list")
    return SqlSchedule(
        schedule_name=_require_str(data, 'scheduleName') or '',
        policy_when_error=Policy.from_value(data.get('policyWhenError')),
        db_type=DbType.from_value(data.get('dbType')),
        db_url=_require_str(data, 'dbUrl'),
        db_user=_require_str(data, 'dbUser'),
        db_password=_require_str(data, 'dbPassword'),
        result_file_path=_require_str(data, 'resultFilePath'),
        task_list=[_task_from_dict(task) for task in task_list],
    )


def schedule_to_dict(schedule: SqlSchedule) -> Dict:
    data = {
        'scheduleName': schedule.schedule_name,
        'policyWhenError': schedule.policy_when_error.value if schedule.policy_when_error else None,
        'dbType': schedule.db_type.value if schedule.db_type else None,
        'dbUrl': schedule.db_url,
        'dbUser': schedule.db_user,
        'dbPassword': schedule.db_password,
        'resultFilePath': schedule.result_file_path,
        'taskList': [],
    }
    for task in schedule.task_list:
        task_data = {'taskName': task.task_name, 'sqlList': list(task.sql_list)}
        if task.policy_when_error is not None:
            task_data['policyWhenError'] = task.policy_when_error.value
        data['taskList'].append(task_data)
    return {key: value for key, value in data.items() if value is not None}


def parse_json_string(json_content: str) -> SqlSchedule:
    try:
        data = json.loads(json_content)
    except json.JSONDecodeError as e:
        raise ScheduleFormatError(f"Invalid schedule JSON: {e}") from e
    return schedule_from_dict(data)


def parse_json(stream: IO) -> SqlSchedule:
    try:
        data = json.load(stream)
    except json.JSONDecodeError as e:
        raise ScheduleFormatError(f"Invalid schedule JSON: {e}") from e
    return schedule_from_dict(data)


def parse_json_file(file_path: str) -> SqlSchedule:
    """
    读取调度 JSON 文件

    Args:
        file_path: JSON 文件路径
    Returns:
        SqlSchedule，source_dir 指向文件所在目录
    Raises:
        ScheduleFormatError: 文件不存在、无法读取或格式错误
    """
    try:
        with open(file_path, 'r', encoding='utf-8-sig') as f:
            schedule = parse_json(f)
    except (OSError, UnicodeDecodeError) as e:
        raise ScheduleFormatError(f"Cannot read schedule file {file_path}: {e}") from e
    schedule.source_dir = os.path.dirname(os.path.abspath(file_path))
    return schedule


def to_json_string(schedule: SqlSchedule) -> str:
    return json.dumps(schedule_to_dict(schedule), ensure_ascii=False, indent=4)


def write_json_to_file(schedule: SqlSchedule, file_path: str) -> None:
    with open(file_path, 'w', encoding='utf-8') as w:
        w.write(to_json_string(schedule))
