#!/usr/bin/env python3
"""Convenience runner for the Strava activity client.

Usage:
    python run.py activities
"""
import logging
import sys

from strava_activity_client.main import main

if __name__ == "__main__":
    if not logging.getLogger().hasHandlers():
        logging.basicConfig(level=logging.INFO, format="[%(asctime)s] %(levelname)s %(name)s: %(message)s")
    sys.exit(main())
