import logging
import os


DEFAULT_LOG_FILENAME = 'fit-log.txt'
LOGGER_NAME = 'dtnn'

LINE_FORMAT = '[%(asctime)s] %(levelname)-8s %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def setup_logging(filename=None, stdout=True, level=logging.DEBUG):
    """ Attach file (and optionally stream) handlers to the package logger

    Parameters
    ----------
    filename: str, default=None
        Where the log is written. The default of None writes to
        :code:`DEFAULT_LOG_FILENAME` in the current directory.

    stdout: bool, default=True
        If True, log records are also written to the console

    level: int, default=logging.DEBUG
        The level of the package logger

    Returns
    -------
    logger: logging.Logger
        The package logger, i.e., the parent of every module logger

    """
    formatter = logging.Formatter(fmt=LINE_FORMAT, datefmt=DATE_FORMAT)

    # Handles when filename is None
    filename = filename or os.path.join(os.path.curdir, DEFAULT_LOG_FILENAME)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)

    # Repeated calls replace the handlers installed previously
    for handler in list(logger.handlers):
        if getattr(handler, '_dtnn_handler', False):
            logger.removeHandler(handler)
            handler.close()

    fhandler = logging.FileHandler(filename, mode='w')
    fhandler.setFormatter(formatter)
    fhandler._dtnn_handler = True
    logger.addHandler(fhandler)

    if stdout:
        shandler = logging.StreamHandler()
        shandler.setFormatter(formatter)
        shandler._dtnn_handler = True
        logger.addHandler(shandler)

    return logger


def progress(logger, msg, i, n):
    """ Log `msg` at info level prefixed with a zero-padded counter, e.g.,
    :code:`(007 / 100) msg`
    """
    counter = "(%%0%dd / %d)" % (len(str(n)), n)
    logger.info("%s %s", counter % i, msg)
