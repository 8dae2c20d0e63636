import json
import logging
import sys
import zlib

LOG_TYPE_RESULT = 1
LOG_TYPE_INFO = 2

_handler = None


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
        return "asctime" in self.fmt_dict.values()

    def formatMessage(self, record) -> dict:
        """
        Returns a dictionary of the relevant LogRecord attributes instead of a string.
        KeyError is raised if an unknown attribute is provided in the fmt_dict.
        """
        return {fmt_key: record.__dict__[fmt_val] for fmt_key, fmt_val in self.fmt_dict.items()}

    def format(self, record) -> str:
        record.message = record.getMessage()

        if self.usesTime():
            record.asctime = self.formatTime(record, self.datefmt)

        message_dict = self.formatMessage(record)

        if record.exc_info:
            if not record.exc_text:
                record.exc_text = self.formatException(record.exc_info)

        if record.exc_text:
            message_dict["exc_info"] = record.exc_text

        if record.stack_info:
            message_dict["stack_info"] = self.formatStack(record.stack_info)

        # results carry the kind of object dumped ("class", "xml", "string", ...)
        if record.__dict__.get("type") == LOG_TYPE_RESULT:
            message_dict["type"] = record.__dict__.get("kind", "result")
            if record.__dict__.get("ref") is not None:
                message_dict["ref"] = record.__dict__["ref"]
        else:
            message_dict["type"] = "info"
        return json.dumps(message_dict, default=str)


class LogHandler(logging.StreamHandler):
    def __init__(self):
        super().__init__(sys.stdout)
        self.setFormatter(logging.Formatter('%(levelname)-8s %(message)s'))

    def emit(self, record: logging.LogRecord):
        color = zlib.adler32(record.name.encode()) % 7 + 31
        if isinstance(record.msg, str) and not isinstance(self.formatter, JsonFormatter):
            if record.__dict__.get("type", LOG_TYPE_INFO) == LOG_TYPE_RESULT:
                # results are plain output, not log lines
                self.stream.write(record.getMessage() + self.terminator)
                self.flush()
                return
            if self.stream.isatty():
                record.name = ("\x1b[%dm" % color) + record.name + "\x1b[0m"
                record.msg = ("\x1b[%dm" % color) + record.msg + "\x1b[0m"
        super(LogHandler, self).emit(record)


def get_logger(name: str) -> logging.Logger:
    """Returns a project logger sharing one LogHandler, WARNING by default."""
    global _handler
    if _handler is None:
        _handler = LogHandler()

    log = logging.getLogger(name)
    if _handler not in log.handlers:
        log.addHandler(_handler)
        log.setLevel(logging.WARNING)
        log.propagate = False
    return log


def set_verbose(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.WARNING
    for name, logger in logging.root.manager.loggerDict.items():
        if isinstance(logger, logging.Logger) and _handler in logger.handlers:
            logger.setLevel(level)


def set_json(enabled: bool) -> None:
    if _handler is None:
        get_logger(__name__)
    if enabled:
        _handler.setFormatter(JsonFormatter())
    else:
        _handler.setFormatter(logging.Formatter('%(levelname)-8s %(message)s'))
