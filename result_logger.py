"""
执行结果记录器

把调度执行过程逐行追加到结果文件（每行立即落盘），同时在内存中保留
结构化的 ExecutionOutcome 列表。记录器实例由调用方创建并注入执行器，
每次顶层运行开始时调用 init()，运行中途不会重置。
"""

import logging
import os
import threading
from datetime import datetime
from typing import Iterable, List, Sequence

import pandas as pd

from schedule import PHASE_PARSE, RESULT_SUCCESS, ExecutionOutcome

logger = logging.getLogger(__name__)

DEFAULT_RESULT_FILE = 'result.txt'
SEPARATOR = '=' * 63


def _format_value(value) -> str:
    if value is None:
        return 'NULL'
    if hasattr(value, 'isoformat'):
        return value.isoformat()
    return str(value)


class ResultLogger:

    def __init__(self, result_file: str = DEFAULT_RESULT_FILE):
        self.result_file = result_file
        self.outcomes: List[ExecutionOutcome] = []
        self._lock = threading.Lock()

    def init(self) -> None:
        """
        初始化结果文件

        文件不存在或为空时写入表头；已有内容时追加一条新运行的分隔标记。
        可重复调用，不会清空已有内容。
        """
        directory = os.path.dirname(self.result_file)
        if directory:
            os.makedirs(directory, exist_ok=True)

        now = datetime.now().isoformat(timespec='seconds')
        has_content = os.path.exists(self.result_file) and os.path.getsize(self.result_file) > 0
        if has_content:
            lines = ['', '', SEPARATOR, f'New Execution - {now}', SEPARATOR]
        else:
            lines = [f'SQL Execution Results - {now}', SEPARATOR]
        self.outcomes = []
        self._write(lines)

    def record(self, message: str) -> None:
        """追加一行到结果文件"""
        self._write([message])

    def record_schedule(self, schedule_name: str, message: str) -> None:
        self.record(f'Schedule: {schedule_name} - {message}')

    def record_task(self, schedule_name: str, task_name: str, message: str) -> None:
        self.record(f'Schedule: {schedule_name} - Task: {task_name} - {message}')

    def record_outcome(self, outcome: ExecutionOutcome) -> None:
        """
        记录单条语句的校验或执行结果

        写入两行：`<调度>-<任务>-<截断后的SQL>`，以及阶段结果行，例如
        `parse success`、`parse fail: ...`、`execution success - rows affected: 3`、
        `execution fail: ...`
        """
        if outcome.phase == PHASE_PARSE:
            status = 'parse success' if outcome.result == RESULT_SUCCESS else f'parse fail: {outcome.detail}'
        elif outcome.result == RESULT_SUCCESS:
            status = f'execution success - {outcome.detail}' if outcome.detail else 'execution success'
        else:
            status = f'execution fail: {outcome.detail}'

        with self._lock:
            self.outcomes.append(outcome)
        self._write([f'{outcome.schedule_name}-{outcome.task_name}-{outcome.sql}', status])

    def record_query_result(self, columns: Sequence[str], rows: Iterable[Sequence]) -> None:
        """
        记录查询结果：列名、逐行数据和总行数

        Args:
            columns: 列名列表
            rows: 行数据（每行为与列对应的序列）
        """
        frame = pd.DataFrame(list(rows), columns=list(columns), dtype=object)
        lines = ['Query Results - Columns: ' + ', '.join(str(column) for column in frame.columns)]
        if not frame.empty:
            cells = frame.apply(lambda column: column.map(_format_value))
            for idx, values in enumerate(cells.values.tolist(), 1):
                lines.append(f'Row {idx}: ' + ', '.join(values))
        lines.append(f'Total rows: {len(frame.index)}')
        self._write(lines)

    def _write(self, lines: List[str]) -> None:
        with self._lock:
            try:
                with open(self.result_file, 'a', encoding='utf-8') as f:
                    f.write(''.join(line + '\n' for line in lines))
                    f.flush()
            except OSError as e:
                logger.error(f"写入结果文件失败: {self.result_file}: {e}")
