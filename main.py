#!/usr/bin/env python3
"""
Practice Regiment Tempo Logger - Main entry point
"""
import sys

from regimentlog.cli import main

if __name__ == "__main__":
    sys.exit(main())
