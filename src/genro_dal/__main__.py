# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""CLI entry point for genro-dal (python -m genro_dal).

Usage:
    python -m genro_dal --help
    python -m genro_dal list
    python -m genro_dal ping main --schema app
    python -m genro_dal run main migrations/001.sql
"""

from .cli import main

if __name__ == "__main__":
    main()
