#!/usr/bin/env python3
"""Entry point for running pdfforge as a module.

This allows the package to be invoked with:
    python -m pdfforge <command> [arguments]
"""

from pdfforge.cli import main

if __name__ == "__main__":
    main()
