import logging
import os
from logging.handlers import RotatingFileHandler

_FORMATTER = logging.Formatter(
    '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)


def _file_handler(log_file: str) -> RotatingFileHandler:
    # 延遲開檔，只有真正寫入時才建立
    handler = RotatingFileHandler(
        log_file,
        maxBytes=1024*1024,  # 1MB
        backupCount=5,
        encoding='utf-8',
        delay=True
    )
    handler.setFormatter(_FORMATTER)
    return handler


class DiscordLogger:
    """自定義日誌系統"""

    def __init__(self, log_file: str = None, level: str = None):
        log_file = log_file or os.getenv("DICE_BOT_LOG_FILE", "bot.log")
        level = level or os.getenv("DICE_BOT_LOG_LEVEL", "INFO")

        self.logger = logging.getLogger('DiceBot')
        self.logger.setLevel(level.upper())

        # 避免重複添加處理器
        if not self.logger.handlers:
            console_handler = logging.StreamHandler()
            console_handler.setFormatter(_FORMATTER)

            self.logger.addHandler(_file_handler(log_file))
            self.logger.addHandler(console_handler)

    @property
    def log_file(self):
        """目前的日誌文件路徑"""
        for handler in self.logger.handlers:
            if isinstance(handler, RotatingFileHandler):
                return handler.baseFilename
        return None

    def set_level(self, level: str):
        """調整日誌級別"""
        self.logger.setLevel(level.upper())

    def set_log_file(self, log_file: str):
        """改寫到配置指定的日誌文件，環境變量 DICE_BOT_LOG_FILE 優先"""
        if not log_file or os.getenv("DICE_BOT_LOG_FILE"):
            return
        if self.log_file == os.path.abspath(log_file):
            return

        for handler in list(self.logger.handlers):
            if isinstance(handler, RotatingFileHandler):
                self.logger.removeHandler(handler)
                handler.close()
        self.logger.addHandler(_file_handler(log_file))

    def info(self, message: str):
        self.logger.info(message)

    def warning(self, message: str):
        self.logger.warning(message)

    def error(self, message: str):
        self.logger.error(message)

    def exception(self, message: str):
        """記錄錯誤並附上追蹤資訊"""
        self.logger.exception(message)

    def debug(self, message: str):
        self.logger.debug(message)


# 創建全局日誌實例
logger = DiscordLogger()


def get_logger() -> DiscordLogger:
    """獲取日誌實例"""
    return logger
