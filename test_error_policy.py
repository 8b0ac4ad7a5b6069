import pytest

from error_policy import Policy, resolve_policy
from errors import ScheduleFormatError


@pytest.mark.parametrize('task_policy, schedule_policy, expected', [
    (Policy.STOP, Policy.CONTINUE, Policy.STOP),
    (Policy.CONTINUE, Policy.STOP, Policy.CONTINUE),
    (None, Policy.STOP, Policy.STOP),
    (None, Policy.CONTINUE, Policy.CONTINUE),
    (Policy.STOP, None, Policy.STOP),
    (None, None, Policy.CONTINUE),
])
def test_resolve_policy(task_policy, schedule_policy, expected):
    """任务级策略优先，其次调度级策略，都没有时按 continue"""
    assert resolve_policy(task_policy, schedule_policy) is expected


def test_resolve_policy_accepts_raw_values():
    assert resolve_policy('STOP', None) is Policy.STOP
    assert resolve_policy(None, 'continue') is Policy.CONTINUE


@pytest.mark.parametrize('value, expected', [
    ('stop', Policy.STOP),
    ('Continue', Policy.CONTINUE),
    (' STOP ', Policy.STOP),
    (None, None),
    ('', None),
])
def test_policy_from_value(value, expected):
    assert Policy.from_value(value) is expected


def test_policy_from_value_invalid():
    with pytest.raises(ScheduleFormatError):
        Policy.from_value('retry')
