import logging
import zlib

import json
import sys

LOG_TYPE_FINDING = 1
LOG_TYPE_INFO = 2

# every LogHandler ever created, so the CLI can switch all of them to JSON or DEBUG at once
_handlers = []


class JsonFormatter(logging.Formatter):
    """
    Formatter that outputs JSON strings after parsing the LogRecord.

    @param dict fmt_dict: Key: logging format attribute pairs. Defaults to {"message": "message"}.
    @param str time_format: time.strftime() format string. Default: "%Y-%m-%dT%H:%M:%S"
    @param str msec_format: Microsecond formatting. Appended at the end. Default: "%s.%03dZ"
    """

    def __init__(self, fmt_dict: dict = None, time_format: str = "%Y-%m-%dT%H:%M:%S", msec_format: str = "%s.%03dZ"):
        super().__init__()
        self.fmt_dict = fmt_dict if fmt_dict is not None else {"message": "message"}
        self.default_time_format = time_format
        self.default_msec_format = msec_format
        self.datefmt = None

    def usesTime(self) -> bool:
        """
        Overwritten to look for the attribute in the format dict values instead of the fmt string.
        """
        return "asctime" in self.fmt_dict.values()

    def formatMessage(self, record) -> dict:
        """
        Overwritten to return a dictionary of the relevant LogRecord attributes instead of a string.
        KeyError is raised if an unknown attribute is provided in the fmt_dict.
        """
        return {fmt_key: record.__dict__[fmt_val] for fmt_key, fmt_val in self.fmt_dict.items()}

    def format(self, record) -> str:
        """
        Mostly the same as the parent's class method, the difference being that a dict is manipulated and dumped as JSON
        instead of a string.
        """
        record.message = record.getMessage()

        if self.usesTime():
            record.asctime = self.formatTime(record, self.datefmt)

        message_dict = self.formatMessage(record)

        if record.exc_info:
            # Cache the traceback text to avoid converting it multiple times
            # (it's constant anyway)
            if not record.exc_text:
                record.exc_text = self.formatException(record.exc_info)

        if record.exc_text:
            message_dict["exc_info"] = record.exc_text

        if record.stack_info:
            message_dict["stack_info"] = self.formatStack(record.stack_info)

        t = record.__dict__.get("type")
        if t and t == LOG_TYPE_FINDING:
            message_dict["type"] = "finding"
            message_dict.update(record.__dict__.get("finding", {}))
        elif not t or t == LOG_TYPE_INFO:
            message_dict["type"] = "info"
            message_dict["level"] = record.levelname
        return json.dumps(message_dict, default=str)


class LogHandler(logging.StreamHandler):
    def __init__(self):
        super().__init__(sys.stdout)
        self.setFormatter(logging.Formatter('%(message)s'))
        _handlers.append(self)

    def emit(self, record: logging.LogRecord):
        color = zlib.adler32(record.name.encode()) % 7 + 31
        if isinstance(record.msg, str) and not isinstance(self.formatter, JsonFormatter):
            if record.__dict__.get("type", LOG_TYPE_INFO) == LOG_TYPE_FINDING:
                record.msg = "WARNING: " + record.msg
                color = 33
            elif record.levelno >= logging.WARNING:
                record.msg = f"{record.levelname}: {record.msg}"
            if self.stream.isatty():
                record.msg = ("\x1b[%dm" % color) + record.msg + "\x1b[0m"
        super(LogHandler, self).emit(record)


def use_json_output():
    for handler in _handlers:
        handler.setFormatter(JsonFormatter())


def set_level(level: int):
    for name in list(logging.Logger.manager.loggerDict):
        logger = logging.getLogger(name)
        if any(h in _handlers for h in logger.handlers):
            logger.setLevel(level)
