"""
Named loggers for tmx_loader.

Library modules only ask for a child of the 'tmx_loader' logger; handlers
and levels belong to the host application.
"""

import logging
from typing import Optional


ROOT_LOGGER_NAME = 'tmx_loader'


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """get_logger('parser') -> logger named 'tmx_loader.parser'"""
    if name:
        return logging.getLogger(f'{ROOT_LOGGER_NAME}.{name}')
    return logging.getLogger(ROOT_LOGGER_NAME)
