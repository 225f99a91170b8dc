"""日志配置。"""

import logging.config


def setup_logging(level: str = "INFO", access_log: bool = True) -> None:
    level = level.upper()
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
                    "datefmt": "%Y-%m-%d %H:%M:%S",
                },
                # uvicorn 的访问日志已格式化
                "access_simple": {"format": "%(message)s"},
            },
            "handlers": {
                "console": {"class": "logging.StreamHandler", "formatter": "default"},
                "access": {"class": "logging.StreamHandler", "formatter": "access_simple"},
            },
            "loggers": {
                "uvicorn.error": {"level": level, "handlers": ["console"], "propagate": False},
                "uvicorn.access": {
                    "level": "INFO" if access_log else "WARNING",
                    "handlers": ["access"],
                    "propagate": False,
                },
                "httpx": {"level": "WARNING"},
            },
            "root": {"level": level, "handlers": ["console"]},
        }
    )
