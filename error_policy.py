from enum import Enum
from typing import Optional

from errors import ScheduleFormatError


class Policy(Enum):
    STOP = 'stop'
    CONTINUE = 'continue'

    @classmethod
    def from_value(cls, value) -> Optional['Policy']:
        """解析 policyWhenError 字段（不区分大小写），为空返回 None"""
        if value is None or isinstance(value, Policy):
            return value
        text = str(value).strip().lower()
        if not text:
            return None
        try:
            return cls(text)
        except ValueError:
            raise ScheduleFormatError(f"Unsupported policyWhenError: {value}")


def resolve_policy(task_policy: Optional[Policy], schedule_policy: Optional[Policy]) -> Policy:
    """
    计算语句级别的生效策略

    任务级策略存在时总是优先，否则使用调度级策略；两者都没有时按 continue 处理。
    校验阶段和执行阶段各自调用一次，两次判断互不影响。

    Args:
        task_policy: 任务上声明的策略
        schedule_policy: 调度上声明的策略
    Returns:
        生效的 Policy
    """
    if task_policy is not None:
        return Policy.from_value(task_policy)
    if schedule_policy is not None:
        return Policy.from_value(schedule_policy)
    return Policy.CONTINUE

