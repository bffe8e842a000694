"""Run configuration and toolchain command settings."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from .exceptions import ToolchainConfigError
from .models import DEFAULT_PASSES, ConfigKey

MATCH_EVERYTHING = ".*"
REDACTED_KEYS = frozenset({ConfigKey.KUBECONFIG, ConfigKey.TEST_AWS_SECRET})

_SPLIT_PATTERN = re.compile(r"[\s,]+")


def split_names(raw: str) -> list[str]:
    """Split a PASSES style value on whitespace or commas."""

    return [token for token in _SPLIT_PATTERN.split(raw.strip()) if token]


@dataclass(frozen=True)
class RunConfiguration:
    """Environment-derived settings for one CI run.

    Values are either present and non-empty or absent. Build it once with
    :meth:`from_env` and hand it to every component.
    """

    values: Mapping[ConfigKey, str] = field(default_factory=dict)

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "RunConfiguration":
        env = os.environ if env is None else env
        values: Dict[ConfigKey, str] = {}
        for key in ConfigKey:
            raw = env.get(key.value)
            if raw is None or not raw.strip():
                continue
            values[key] = raw.strip()
        return cls(values=values)

    def get(self, key: ConfigKey, default: Optional[str] = None) -> Optional[str]:
        return self.values.get(key, default)

    def has(self, key: ConfigKey) -> bool:
        return key in self.values

    def missing(self, keys: Iterable[ConfigKey]) -> tuple[ConfigKey, ...]:
        return tuple(key for key in keys if key not in self.values)

    def with_values(self, **overrides: Optional[str]) -> "RunConfiguration":
        """Return a copy with keys (by enum member name) replaced or removed."""

        updated = dict(self.values)
        for name, value in overrides.items():
            key = ConfigKey[name]
            if value is None or not value.strip():
                updated.pop(key, None)
            else:
                updated[key] = value.strip()
        return RunConfiguration(values=updated)

    @property
    def selector(self) -> str:
        return self.values.get(ConfigKey.E2E_TEST_SELECTOR, MATCH_EVERYTHING)

    @property
    def upgrade_selector(self) -> str:
        return self.values.get(ConfigKey.UPGRADE_TEST_SELECTOR, MATCH_EVERYTHING)

    @property
    def pass_names(self) -> list[str]:
        names = split_names(self.values.get(ConfigKey.PASSES, ""))
        return names or [name.value for name in DEFAULT_PASSES]

    def redacted(self) -> Dict[str, str]:
        payload: Dict[str, str] = {}
        for key, value in self.values.items():
            payload[key.value] = "***" if key in REDACTED_KEYS else value
        return payload


# ---------------------------------------------------------------------------
# Toolchain commands
# ---------------------------------------------------------------------------


class AnalyzerSpec(BaseModel):
    name: str
    command: List[str]


class FormatChecks(BaseModel):
    codegen_verify: List[str] = Field(default_factory=lambda: ["hack/k8s/codegen/verify-generated.sh"])
    formatter: List[str] = Field(default_factory=lambda: ["gofmt", "-l", "-s", "-d"])
    vet: List[str] = Field(default_factory=lambda: ["go", "vet"])
    analyzers: List[AnalyzerSpec] = Field(
        default_factory=lambda: [
            AnalyzerSpec(name="gosimple", command=["gosimple", "./pkg/...", "./cmd/..."]),
            AnalyzerSpec(name="unused", command=["unused", "./pkg/...", "./cmd/..."]),
        ]
    )
    source_suffix: str = ".go"
    exclude_dirs: List[str] = Field(default_factory=lambda: ["vendor", ".git"])
    license_pattern: str = "Copyright|generated|GENERATED"
    license_header_lines: int = Field(default=3, ge=1)

    @field_validator("license_pattern")
    @classmethod
    def _compiles(cls, value: str) -> str:
        try:
            re.compile(value)
        except re.error as exc:
            raise ValueError(f"invalid license pattern: {exc}") from exc
        return value


class BuildSteps(BaseModel):
    primary: List[str] = Field(default_factory=lambda: ["hack/build/operator/build"])
    auxiliary: List[List[str]] = Field(
        default_factory=lambda: [
            ["hack/build/backup-operator/build"],
            ["hack/build/restore-operator/build"],
        ]
    )
    image: List[str] = Field(default_factory=lambda: ["hack/build/docker_push"])
    image_env: str = "IMAGE"

    @field_validator("auxiliary")
    @classmethod
    def _non_empty(cls, value: List[List[str]]) -> List[List[str]]:
        if any(not command for command in value):
            raise ValueError("auxiliary build commands cannot be empty")
        return value


class GoTestSettings(BaseModel):
    go_test: List[str] = Field(default_factory=lambda: ["go", "test"])
    warm_flag: str = "-i"
    timeout: str = "30m"
    race: bool = True


class EndToEndPackages(BaseModel):
    e2e: str = "./test/e2e/"
    e2eslow: str = "./test/e2e/e2eslow"
    e2esh: str = "./test/e2e/e2esh"
    upgrade: str = "./test/e2e/upgradetest/"


class UnitSettings(BaseModel):
    list_packages: List[str] = Field(default_factory=lambda: ["go", "list", "./pkg/..."])
    exclude_pattern: Optional[str] = "framework"
    coverage_flags: List[str] = Field(default_factory=lambda: ["-race", "-covermode=atomic"])
    fragment: Path = Path("profile.out")
    report: Path = Path("coverage.txt")
    header: str = "mode: atomic"
    upload: Optional[List[str]] = Field(
        default_factory=lambda: ["bash", "-c", "curl -s https://codecov.io/bash | bash"]
    )


class ToolchainConfig(BaseModel):
    """Command lines for every external collaborator."""

    fmt: FormatChecks = Field(default_factory=FormatChecks)
    build: BuildSteps = Field(default_factory=BuildSteps)
    test: GoTestSettings = Field(default_factory=GoTestSettings)
    e2e: EndToEndPackages = Field(default_factory=EndToEndPackages)
    unit: UnitSettings = Field(default_factory=UnitSettings)
    command_timeout_seconds: Optional[int] = Field(default=None, ge=1)


def load_toolchain_config(path: Optional[Path]) -> ToolchainConfig:
    """Load toolchain settings from YAML, falling back to defaults."""

    if path is None:
        return ToolchainConfig()
    try:
        payload = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise ToolchainConfigError(f"Unable to read toolchain config {path}: {exc}") from exc
    if not isinstance(payload, dict):
        raise ToolchainConfigError(f"Toolchain config {path} must be a mapping")
    try:
        return ToolchainConfig.model_validate(payload)
    except ValidationError as exc:
        raise ToolchainConfigError(f"Invalid toolchain config {path}: {exc}") from exc


def toolchain_path(config: RunConfiguration, override: Optional[Path] = None) -> Optional[Path]:
    if override is not None:
        return override
    raw = config.get(ConfigKey.TOOLCHAIN)
    return Path(raw).expanduser() if raw else None


__all__ = [
    "MATCH_EVERYTHING",
    "RunConfiguration",
    "ToolchainConfig",
    "load_toolchain_config",
    "split_names",
    "toolchain_path",
]
