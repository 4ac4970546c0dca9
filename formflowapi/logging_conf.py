import logging
from logging.config import dictConfig

from formflowapi.config import DevConfig, TestConfig, config


def obfuscated(email: str, obfuscated_length: int) -> str:
    characters = email[:obfuscated_length]
    first, last = email.split("@")
    return characters + ("*" * (len(first) - obfuscated_length)) + "@" + last


class EmailObfuscationFilter(logging.Filter):
    """Masks the ``email`` attribute passed through ``extra=``."""

    def __init__(self, name: str = "", obfuscate: bool = True, obfuscated_length: int = 2) -> None:
        super().__init__(name)
        self.obfuscate = obfuscate
        self.obfuscated_length = obfuscated_length

    def filter(self, record: logging.LogRecord) -> bool:
        email = getattr(record, "email", None)
        if not email:
            record.email = "-"
        elif self.obfuscate and "@" in email:
            record.email = obfuscated(email, self.obfuscated_length)
        return True


def configure_logging() -> None:
    handlers = ["default"]
    # dev and test keep identities readable unless asked otherwise
    obfuscate = config.OBFUSCATE_EMAILS or not isinstance(config, (DevConfig, TestConfig))

    handler_config = {
        "default": {
            "class": "logging.StreamHandler",
            "level": "DEBUG",
            "formatter": "console",
            "filters": ["email_obfuscation"],
        },
    }
    if config.LOG_FILE:
        handlers.append("rotating_file")
        handler_config["rotating_file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": "DEBUG",
            "formatter": "file",
            "filters": ["email_obfuscation"],
            "filename": config.LOG_FILE,
            "maxBytes": 1024 * 1024,
            "backupCount": 2,
            "encoding": "utf8",
        }

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "filters": {
                "email_obfuscation": {
                    "()": EmailObfuscationFilter,
                    "obfuscate": obfuscate,
                    "obfuscated_length": 2,
                },
            },
            "formatters": {
                "console": {
                    "class": "logging.Formatter",
                    "datefmt": "%Y-%m-%dT%H:%M:%S",
                    "format": "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(email)s - %(message)s",
                },
                "file": {
                    "class": "logging.Formatter",
                    "datefmt": "%Y-%m-%dT%H:%M:%S",
                    "format": "%(asctime)s.%(msecs)03dZ | %(levelname)-8s | %(name)s:%(lineno)d | %(email)s - %(message)s",
                },
            },
            "handlers": handler_config,
            "loggers": {
                "uvicorn": {"handlers": handlers, "level": "INFO"},
                "databases": {"handlers": handlers, "level": "WARNING"},
                "formflowapi": {
                    "handlers": handlers,
                    "level": config.LOG_LEVEL,
                    "propagate": False,
                },
            },
        }
    )
