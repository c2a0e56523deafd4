# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/cpjoin/errors.py


class CpjoinError(RuntimeError):
    """Base class for control-plane join failures."""


class ConfigError(CpjoinError):
    """Raised when a prerequisite configuration is missing or misused."""


class ConnectionSetupError(CpjoinError):
    """Raised when an authenticated cluster client cannot be built."""


class MembershipError(CpjoinError):
    """Raised when the cluster rejects a membership change."""


class UnitWriteError(CpjoinError):
    """Raised when a unit file (or marker file) cannot be rendered or written."""


class UnsupportedPlatformError(CpjoinError):
    """Raised when no supported init system is found on the host."""


class ServiceStartError(CpjoinError):
    """Raised when the init system refuses to start a unit."""


class ClusterUnavailableError(CpjoinError):
    """Raised when the cluster did not become available within the retry budget."""


class ClusterUnhealthyError(CpjoinError):
    """Raised when a contacted member reports an unhealthy state."""


class DiscoveryError(CpjoinError):
    """Raised when the control-plane replicas could not be discovered."""


class MarkerWriteError(UnitWriteError):
    """Raised when the service-hosting marker file cannot be written."""
