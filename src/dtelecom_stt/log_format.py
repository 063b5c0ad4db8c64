import logging

RESET = "\033[0m"
DIM = "\033[2m"
BOLD = "\033[1m"
RED = "\033[31m"
GREEN = "\033[32m"
YELLOW = "\033[33m"
CYAN = "\033[36m"
MAGENTA = "\033[35m"

LEVEL_COLORS = {
    logging.DEBUG: DIM,
    logging.INFO: GREEN,
    logging.WARNING: YELLOW,
    logging.ERROR: RED,
    logging.CRITICAL: RED + BOLD,
}

# message prefix -> color, first match wins
HIGHLIGHTS = (
    ("State:", BOLD + CYAN),
    ("Transcript:", CYAN),
    ("Session created", BOLD + GREEN),
    ("Auto-extended", BOLD + GREEN),
    ("Session expiring", BOLD + YELLOW),
    ("Session expired", BOLD + RED),
    ("Stream ready", MAGENTA),
)


def highlight(msg: str, levelno: int) -> str:
    for prefix, color in HIGHLIGHTS:
        if msg.startswith(prefix):
            return f"{color}{msg}{RESET}"
    if levelno == logging.DEBUG:
        return f"{DIM}{msg}{RESET}"
    if levelno >= logging.WARNING:
        return f"{LEVEL_COLORS.get(levelno, RED)}{msg}{RESET}"
    return msg


class ColoredFormatter(logging.Formatter):
    """Terminal formatter: dim timestamp, colored level, short logger name."""

    def format(self, record: logging.LogRecord) -> str:
        color = LEVEL_COLORS.get(record.levelno, "")
        stamp = self.formatTime(record, self.datefmt)
        source = record.name.rsplit(".", 1)[-1]
        text = highlight(record.getMessage(), record.levelno)
        if record.exc_info:
            text += "\n" + self.formatException(record.exc_info)
        return f"{DIM}{stamp}{RESET} {color}{record.levelname:<7}{RESET} {DIM}{source:<20}{RESET} {text}"
