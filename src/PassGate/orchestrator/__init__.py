"""CI pass orchestration engine."""

from .config import RunConfiguration, ToolchainConfig, load_toolchain_config
from .coverage import CoverageAggregator, CoverageReport, merge_fragments
from .exceptions import (
    MissingConfiguration,
    OrchestratorError,
    PassFailure,
    PolicyViolation,
    SubprocessFailure,
    ToolchainConfigError,
    UnknownPass,
)
from .invoker import Invoker
from .ledger import FailureLedger
from .models import (
    DEFAULT_PASSES,
    CommandResult,
    ConfigKey,
    ExitCode,
    PassName,
    PassResult,
    PassStatus,
    RunReport,
    StepResult,
    StepStatus,
)
from .passes import PassContext
from .registry import PassRegistry, PassSpec, default_registry, parse_pass_names
from .reporter import Reporter, exit_code_for
from .retry import RetryableRunner
from .runner import PassRunner
from .validation import RequiredInputValidator, require

__all__ = [
    "DEFAULT_PASSES",
    "CommandResult",
    "ConfigKey",
    "CoverageAggregator",
    "CoverageReport",
    "ExitCode",
    "FailureLedger",
    "Invoker",
    "MissingConfiguration",
    "OrchestratorError",
    "PassContext",
    "PassFailure",
    "PassName",
    "PassRegistry",
    "PassResult",
    "PassRunner",
    "PassSpec",
    "PassStatus",
    "PolicyViolation",
    "Reporter",
    "RequiredInputValidator",
    "RetryableRunner",
    "RunConfiguration",
    "RunReport",
    "StepResult",
    "StepStatus",
    "SubprocessFailure",
    "ToolchainConfig",
    "ToolchainConfigError",
    "UnknownPass",
    "default_registry",
    "exit_code_for",
    "load_toolchain_config",
    "merge_fragments",
    "parse_pass_names",
    "require",
]
