#!/usr/bin/env python3
"""
releasegate: gated build-and-release pipeline orchestrator.

This module is a thin shim that exposes the CLI app from releasegate.cli.

Usage:
    releasegate run --source-ref REF --image-tag TAG --target TARGET
    releasegate validate
    releasegate init
    releasegate logs list
"""

from releasegate.cli.cli import bootstrap

# Load ~/.config/releasegate/.env before the CLI reads any configuration
bootstrap()

from releasegate.cli.cli import app  # noqa: E402

if __name__ == "__main__":
    app()
