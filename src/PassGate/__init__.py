"""PassGate package exports."""

from .cli import __all__ as _cli_all
from .orchestrator import __all__ as _orchestrator_all

__all__ = [
    *_cli_all,
    *_orchestrator_all,
]
