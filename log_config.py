"""日志配置：根 logger 上挂一个控制台输出。助记词与私钥一律不写日志。"""

import logging


def configure_logging(level: int = logging.INFO) -> None:
    """仅在根 logger 尚未配置时安装控制台 handler。"""
    root_logger = logging.getLogger()
    if root_logger.handlers:
        return

    root_logger.setLevel(level)
    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(
        logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s", datefmt="%H:%M:%S")
    )
    root_logger.addHandler(console_handler)

    # 第三方 HTTP 客户端日志过于嘈杂
    for noisy in ("httpx", "httpcore", "web3", "urllib3"):
        logging.getLogger(noisy).setLevel(max(level, logging.WARNING))
