import argparse
import logging
import sys

from errors import ConfigurationError, SqlValidationEnvironmentError
from sql_executor import execute_schedule_from_json
from utils import getLogger

logger = logging.getLogger(__name__)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        description='SQL 调度执行工具',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
示例用法:
  # 执行一个调度文件，结果写入调度中的 resultFilePath（默认 result.txt）
  python run_schedule.py schedule.json

  # 依次执行多个调度，结果写入同一个文件
  python run_schedule.py daily.json weekly.json -o output/result.txt

  # 输出调试日志到文件
  python run_schedule.py schedule.json --log-file schedule_log.txt -v

退出码:
  0 - 所有调度执行成功
  1 - 至少一个调度失败
  2 - 配置错误（缺少 dbType / dbUrl 等）或 SQL 解析器异常
        """
    )

    parser.add_argument('schedule_files',
                        nargs='+',
                        help='调度 JSON 文件')
    parser.add_argument('-o', '--output',
                        help='结果文件路径（默认使用调度中的 resultFilePath）')
    parser.add_argument('--log-file',
                        help='日志文件路径')
    parser.add_argument('--empty-task-is-failure',
                        action='store_true',
                        help='校验后没有可执行语句的任务按失败处理')
    parser.add_argument('-v', '--verbose',
                        action='store_true',
                        help='输出调试日志')

    args = parser.parse_args(argv)

    getLogger(None, file_name=args.log_file, level=logging.DEBUG if args.verbose else logging.INFO)

    failed = []
    for schedule_file in args.schedule_files:
        logger.info(f"开始执行调度文件: {schedule_file}")
        try:
            success = execute_schedule_from_json(
                schedule_file,
                result_file=args.output,
                empty_task_is_failure=args.empty_task_is_failure,
            )
        except ConfigurationError as e:
            logger.error(f"配置错误: {schedule_file}: {e}")
            return 2
        except SqlValidationEnvironmentError as e:
            logger.error(f"SQL校验环境错误: {schedule_file}: {e}")
            return 2
        if not success:
            failed.append(schedule_file)

    logger.info("=" * 70)
    logger.info(f"执行完成: 成功 {len(args.schedule_files) - len(failed)} 个，失败 {len(failed)} 个")
    for schedule_file in failed:
        logger.info(f"  失败: {schedule_file}")
    logger.info("=" * 70)
    return 1 if failed else 0


if __name__ == '__main__':
    sys.exit(main())
