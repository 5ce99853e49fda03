import os
import sys
import logging

LOG_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'
ROOT_LOGGER = "opencart_migration"
LOG_FILE_SUFFIX = "_migration_log.txt"


def setup_logging(settings, level=logging.INFO):
    """Console output plus a run-level migration.log, configured once."""
    handlers = [logging.StreamHandler(sys.stdout)]
    if settings.LOG_DIR:
        os.makedirs(settings.LOG_DIR, exist_ok=True)
        handlers.append(logging.FileHandler(os.path.join(settings.LOG_DIR, 'migration.log'), encoding='utf-8'))

    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers)
    return logging.getLogger(ROOT_LOGGER)


def get_logger(name, settings):
    """Named logger with its own append-only <name>_migration_log.txt file.

    Records still propagate to the root logger, so the console mirrors every
    per-loader file.
    """
    logger = logging.getLogger(f"{ROOT_LOGGER}.{name}")
    if not settings.LOG_DIR:
        return logger

    path = os.path.abspath(os.path.join(settings.LOG_DIR, f"{name}{LOG_FILE_SUFFIX}"))
    for handler in logger.handlers:
        if isinstance(handler, logging.FileHandler) and handler.baseFilename == path:
            return logger

    os.makedirs(settings.LOG_DIR, exist_ok=True)
    handler = logging.FileHandler(path, mode='a', encoding='utf-8')
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    return logger


def reset_log_dir(settings):
    """Remove previous per-loader logs before a full run."""
    if not settings.LOG_DIR:
        return

    for name in list(logging.Logger.manager.loggerDict):
        if not name.startswith(f"{ROOT_LOGGER}."):
            continue
        logger = logging.getLogger(name)
        for handler in list(logger.handlers):
            if isinstance(handler, logging.FileHandler):
                logger.removeHandler(handler)
                handler.close()

    if os.path.isdir(settings.LOG_DIR):
        for entry in os.listdir(settings.LOG_DIR):
            path = os.path.join(settings.LOG_DIR, entry)
            # Only the per-loader files get_logger writes; the directory may be shared.
            if entry.endswith(LOG_FILE_SUFFIX) and os.path.isfile(path):
                os.remove(path)
    os.makedirs(settings.LOG_DIR, exist_ok=True)
