"""
Error classification for the exporter.

Errors fall into three families that decide how the collection loop reacts:

- FatalError: the process cannot start (bad base path, no Docker client).
- CycleError: a whole listing failed; the cycle continues with zero entities
  of that kind, so every previously known series of the kind is pruned.
- EntityError: one container or mount could not be sampled; it is skipped
  and its previous series are carried forward unchanged.
"""

from typing import Optional


class ExporterError(Exception):
    """Base class for all exporter errors."""

    error_type = 'exporter'

    def __init__(self, message: str, operation: Optional[str] = None,
                 target: Optional[str] = None):
        super().__init__(message)
        self.operation = operation
        self.target = target

    def __str__(self):
        base = super().__str__()
        if self.operation and self.target:
            return f"{self.operation}({self.target}): {base}"
        if self.operation:
            return f"{self.operation}: {base}"
        return base


class FatalError(ExporterError):
    """Startup errors that terminate the process."""

    error_type = 'fatal'


class ConfigurationError(FatalError):
    error_type = 'configuration'


class ClientInitError(FatalError):
    error_type = 'client_init'


class CycleError(ExporterError):
    """A listing failed; the cycle observes nothing of that kind."""

    error_type = 'cycle'


class ContainerListError(CycleError):
    error_type = 'container_list'


class MountListError(CycleError):
    error_type = 'mount_list'


class EntityError(ExporterError):
    """A single entity could not be sampled this cycle."""

    error_type = 'entity'


class StatsFetchError(EntityError):
    error_type = 'container_stats'


class InspectError(EntityError):
    error_type = 'container_inspect'


class FilesystemStatError(EntityError):
    error_type = 'filesystem_stat'


class LabelContractError(ExporterError, ValueError):
    """A runtime descriptor is missing a required identity field."""

    error_type = 'label_contract'
