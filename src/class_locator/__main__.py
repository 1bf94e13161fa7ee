# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Entry point for running the command line tool as a module: python -m class_locator"""

import sys

from .cli import main

if __name__ == "__main__":
    sys.exit(main())
