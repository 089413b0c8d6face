#!/usr/bin/env python3
"""
Launcher para ncm-tui
Permite ejecutar el cliente sin instalarlo: python launcher.py
"""

import sys
from ncm_tui.main import main

if __name__ == "__main__":
    sys.exit(main())
