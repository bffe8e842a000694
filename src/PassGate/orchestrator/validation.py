"""Required-input checks performed before a pass spawns anything."""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from .config import RunConfiguration
from .exceptions import MissingConfiguration
from .models import ConfigKey

logger = logging.getLogger(__name__)


def require(
    config: RunConfiguration,
    keys: Iterable[ConfigKey],
    *,
    pass_name: Optional[str] = None,
) -> None:
    """Raise :class:`MissingConfiguration` naming every absent key."""

    missing = config.missing(keys)
    if missing:
        logger.error(
            "Missing required configuration",
            extra={"pass": pass_name, "keys": [key.value for key in missing]},
        )
        raise MissingConfiguration(missing, pass_name=pass_name)


class RequiredInputValidator:
    """Binds :func:`require` to one run configuration."""

    def __init__(self, config: RunConfiguration) -> None:
        self._config = config

    def require(self, keys: Iterable[ConfigKey], *, pass_name: Optional[str] = None) -> None:
        require(self._config, keys, pass_name=pass_name)

    def missing(self, keys: Iterable[ConfigKey]) -> tuple[ConfigKey, ...]:
        return self._config.missing(keys)
