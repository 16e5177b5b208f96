"""
Root pytest configuration.

pytest-django reads DJANGO_SETTINGS_MODULE from pyproject.toml and sets
Django up; this default only matters when tests are started from outside
the project root. Project-wide fixtures live in app/conftest.py, order
fixtures in app/orders/conftest.py.
"""

import os

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")
