# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

from dataclasses import dataclass


@dataclass(frozen=True)
class ExecutionContext:
    """
    controls whether mutating calls (membership changes, service starts) are made
    """

    dry_run: bool = False
