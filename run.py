#!/usr/bin/env python3
"""
run.py — Launch obs-panel without installing.

Usage (from the obs-panel directory):
    python run.py start
    python run.py start --obs-host 192.168.1.20 --obs-password mypassword
    python run.py init-config
    python run.py check
"""
import sys
from pathlib import Path

# Ensure the project root is on the path
sys.path.insert(0, str(Path(__file__).parent))

from obs_panel.main import app

if __name__ == "__main__":
    app()
