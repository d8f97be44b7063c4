"""Process-wide logging: console, rotating application log and a separate SQL log."""
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# Engine chatter that carries no statement worth keeping
_SQL_NOISE = ('BEGIN', 'COMMIT', 'ROLLBACK', 'generated in', 'cached since')
_SQL_VERBS = ('SELECT', 'UPDATE', 'DELETE', 'INSERT')


class SQLStatementFilter(logging.Filter):
    """Drop transaction bookkeeping and put each statement on one line."""

    def filter(self, record: logging.LogRecord) -> bool:
        if record.levelno != logging.INFO:
            return True

        message = record.getMessage()
        if any(noise in message for noise in _SQL_NOISE):
            return False
        if any(verb in message for verb in _SQL_VERBS):
            record.msg = ' '.join(message.split())
            record.args = ()
        return True


def _rotating_handler(path: Path, max_bytes: int = 1024 * 1024, backups: int = 5) -> RotatingFileHandler:
    handler = RotatingFileHandler(path, maxBytes=max_bytes, backupCount=backups, encoding='utf-8')
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    return handler


def configure_logging(log_dir: str, level: int = logging.INFO) -> Path:
    """
    Route application logs to stderr and ``<log_dir>/quizduel.log``.

    SQLAlchemy engine output goes to ``quizduel_sql.log`` only, so duel and
    ledger lines stay readable in the main log. Uvicorn's access log shares
    the application file.

    Returns:
        Path of the application log file
    """
    logs_dir = Path(log_dir)
    logs_dir.mkdir(parents=True, exist_ok=True)
    app_log = logs_dir / "quizduel.log"

    app_handler = _rotating_handler(app_log)
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(), app_handler],
        force=True,
    )

    access_logger = logging.getLogger("uvicorn.access")
    access_logger.setLevel(level)
    if app_handler not in access_logger.handlers:
        access_logger.addHandler(app_handler)

    sql_logger = logging.getLogger("sqlalchemy.engine.Engine")
    sql_logger.handlers.clear()
    sql_logger.addHandler(_rotating_handler(logs_dir / "quizduel_sql.log"))
    sql_logger.addFilter(SQLStatementFilter())
    sql_logger.setLevel(level)
    sql_logger.propagate = False

    return app_log
