# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Result shapes shared by providers and connections."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

Row = dict[str, Any]
"""One result row: field name -> value, in driver-reported order."""


@dataclass(frozen=True)
class ExecuteResult:
    """Outcome of a data-modifying statement (0 when not applicable)."""

    affected_rows: int = 0
    insert_id: int = 0


__all__ = ["ExecuteResult", "Row"]
