import json
import os

import pytest

from dialect_adapter import DbType
from error_policy import Policy
from errors import ScheduleFormatError
from schedule import (
    is_sql_file_reference,
    parse_json_file,
    parse_json_string,
    resolve_sql_file_path,
    schedule_from_dict,
    schedule_to_dict,
    to_json_string,
    write_json_to_file,
)

SCHEDULE_JSON = {
    "scheduleName": "nightly",
    "policyWhenError": "continue",
    "dbType": "postgresql",
    "dbUrl": "jdbc:postgresql://localhost:5432/dw",
    "dbUser": "etl",
    "dbPassword": "secret",
    "resultFilePath": "out/result.txt",
    "taskList": [
        {"taskName": "load", "policyWhenError": "stop", "sqlList": ["INSERT INTO t VALUES (1)", "load.sql"]},
        {"taskName": "report", "sqlList": ["SELECT * FROM t"]},
    ],
}


def test_parse_json_string():
    schedule = parse_json_string(json.dumps(SCHEDULE_JSON))
    assert schedule.schedule_name == 'nightly'
    assert schedule.policy_when_error is Policy.CONTINUE
    assert schedule.db_type is DbType.POSTGRESQL
    assert schedule.db_url == 'jdbc:postgresql://localhost:5432/dw'
    assert schedule.result_file_path == 'out/result.txt'
    assert [task.task_name for task in schedule.task_list] == ['load', 'report']
    assert schedule.task_list[0].policy_when_error is Policy.STOP
    assert schedule.task_list[1].policy_when_error is None
    assert schedule.task_list[0].sql_list == ["INSERT INTO t VALUES (1)", "load.sql"]


def test_optional_fields_missing():
    schedule = schedule_from_dict({"scheduleName": "bare"})
    assert schedule.db_type is None
    assert schedule.db_url is None
    assert schedule.policy_when_error is None
    assert schedule.task_list == []


def test_schedule_round_trip(tmp_path):
    """写出再读回，名称、策略、方言和任务列表保持不变"""
    schedule = schedule_from_dict(SCHEDULE_JSON)
    json_path = str(tmp_path / 'schedule.json')
    write_json_to_file(schedule, json_path)

    loaded = parse_json_file(json_path)
    assert schedule_to_dict(loaded) == SCHEDULE_JSON
    assert loaded.source_dir == str(tmp_path)


def test_to_json_string_keeps_non_ascii():
    schedule = schedule_from_dict({"scheduleName": "日终批量", "taskList": []})
    assert '日终批量' in to_json_string(schedule)
    assert 'dbType' not in to_json_string(schedule)


@pytest.mark.parametrize('content', [
    '{not json',
    '[]',
    '{"scheduleName": 1}',
    '{"scheduleName": "x", "taskList": {}}',
    '{"scheduleName": "x", "taskList": 0}',
    '{"scheduleName": "x", "taskList": [{"taskName": "t", "sqlList": ""}]}',
    '{"scheduleName": "x", "taskList": [{"taskName": "t", "sqlList": "SELECT 1"}]}',
    '{"scheduleName": "x", "dbType": "oracle"}',
    '{"scheduleName": "x", "policyWhenError": "retry"}',
])
def test_malformed_schedule(content):
    with pytest.raises(ScheduleFormatError):
        parse_json_string(content)


def test_null_lists_are_empty():
    """taskList / sqlList 为 null 时按空列表处理"""
    schedule = parse_json_string('{"scheduleName": "x", "taskList": null}')
    assert schedule.task_list == []
    schedule = parse_json_string('{"scheduleName": "x", "taskList": [{"taskName": "t", "sqlList": null}]}')
    assert schedule.task_list[0].sql_list == []


def test_parse_missing_file(tmp_path):
    with pytest.raises(ScheduleFormatError):
        parse_json_file(str(tmp_path / 'missing.json'))


@pytest.mark.parametrize('entry, expected', [
    ('load.sql', True),
    ('  scripts/LOAD.SQL ', True),
    ('SELECT 1', False),
    ("SELECT 'a.sql'", False),
    ('', False),
])
def test_is_sql_file_reference(entry, expected):
    assert is_sql_file_reference(entry) is expected


def test_resolve_sql_file_path(tmp_path):
    """相对路径按调度文件所在目录解析"""
    schedule = schedule_from_dict({"scheduleName": "x"})
    schedule.source_dir = str(tmp_path)
    assert resolve_sql_file_path('missing_here.sql', schedule) == os.path.join(str(tmp_path), 'missing_here.sql')

    absolute = str(tmp_path / 'abs.sql')
    assert resolve_sql_file_path(absolute, schedule) == absolute

    schedule.source_dir = None
    assert resolve_sql_file_path(' plain.sql ', schedule) == 'plain.sql'
