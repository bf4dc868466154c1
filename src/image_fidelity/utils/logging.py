"""日志工具。"""

from __future__ import annotations

import logging
import sys


def setup_logging(level: int = logging.INFO, *, quiet: bool = False) -> None:
    """初始化项目日志配置。

    日志固定写入 stderr：重压缩结果可能通过 stdout 输出二进制数据。
    quiet 模式下只保留警告与错误。
    """

    logging.basicConfig(
        level=logging.WARNING if quiet else level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
        force=True,
    )
