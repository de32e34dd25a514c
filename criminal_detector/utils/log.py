"""日志配置"""

import logging

logging.basicConfig(level=logging.INFO)


def get_logger(name):
    """获取日志记录器"""
    logger = logging.getLogger(name)
    return logger
