# SPDX-License-Identifier: MIT
# Copyright (c) 2026 NEDA Contributors

"""NEDA Core - credential lifecycle and administrative trust engine.

The payments dashboard delegates three things to this package:

  - API credentials: issue (secret disclosed once), verify, revoke, delete,
    each bound to a static permission scheme.
  - Trust state: admin verification transitions and Sender/Provider profile
    grants, each audited in the same transaction as the change.
  - Admin read side: paginated principal listings, audit-log queries and
    dashboard aggregates that degrade per sub-aggregate.

CLI entry point: ``neda``
"""

__version__ = "1.0.0"

from . import (
    core as core,
)
