"""Static registry of verification passes."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Iterator, Mapping, Sequence, Union

from .config import split_names
from .exceptions import UnknownPass
from .models import ConfigKey, PassName
from .passes import (
    PassContext,
    build_pass,
    e2e_pass,
    e2esh_pass,
    e2eslow_pass,
    fmt_pass,
    unit_pass,
    upgrade_pass,
)

PassOperation = Callable[[PassContext], None]

OBJECT_STORAGE_KEYS = (ConfigKey.TEST_S3_BUCKET, ConfigKey.TEST_AWS_SECRET)


@dataclass(frozen=True)
class PassSpec:
    """A registered pass: its operation and the inputs it cannot run without."""

    name: PassName
    operation: PassOperation
    required: tuple[ConfigKey, ...] = ()
    description: str = ""


class PassRegistry(Mapping[PassName, PassSpec]):
    """Maps pass names to their registered definitions."""

    def __init__(self, specs: Iterable[PassSpec]) -> None:
        self._specs: Dict[PassName, PassSpec] = {}
        for spec in specs:
            if spec.name in self._specs:
                raise ValueError(f"Pass '{spec.name.value}' registered twice")
            self._specs[spec.name] = spec

    def __getitem__(self, name: PassName) -> PassSpec:
        return self._specs[name]

    def __iter__(self) -> Iterator[PassName]:
        return iter(self._specs)

    def __len__(self) -> int:
        return len(self._specs)

    def resolve(self, requested: Union[str, Sequence[str]]) -> tuple[PassSpec, ...]:
        return tuple(self._specs[name] for name in parse_pass_names(requested, self))


def parse_pass_names(
    requested: Union[str, Sequence[str]],
    registry: Mapping[PassName, PassSpec] | None = None,
) -> tuple[PassName, ...]:
    """Parse pass names, keeping first occurrences in order.

    Every unknown name is reported at once through :class:`UnknownPass`.
    """

    tokens = split_names(requested) if isinstance(requested, str) else [
        token for item in requested for token in split_names(str(item))
    ]
    known = {name.value: name for name in PassName}
    unknown = [token for token in tokens if token not in known]
    if registry is not None:
        unknown += [
            token for token in tokens if token in known and known[token] not in registry
        ]
    if unknown:
        raise UnknownPass(unknown)
    ordered: Dict[PassName, None] = {}
    for token in tokens:
        ordered.setdefault(known[token], None)
    return tuple(ordered)


def default_registry() -> PassRegistry:
    return PassRegistry(
        [
            PassSpec(PassName.FMT, fmt_pass, (), "generated code, formatting, vet and license headers"),
            PassSpec(
                PassName.BUILD,
                build_pass,
                (ConfigKey.OPERATOR_IMAGE,),
                "operator binaries and container image",
            ),
            PassSpec(PassName.E2E, e2e_pass, OBJECT_STORAGE_KEYS, "end-to-end tests"),
            PassSpec(PassName.E2E_SLOW, e2eslow_pass, OBJECT_STORAGE_KEYS, "slow end-to-end tests"),
            PassSpec(PassName.E2E_SH, e2esh_pass, OBJECT_STORAGE_KEYS, "self-hosted end-to-end tests"),
            PassSpec(
                PassName.UPGRADE,
                upgrade_pass,
                (ConfigKey.UPGRADE_FROM, ConfigKey.UPGRADE_TO),
                "operator upgrade tests",
            ),
            PassSpec(PassName.UNIT, unit_pass, (), "unit tests with merged coverage"),
        ]
    )
