"""Hashi: keeps GitHub issues and Asana tasks in sync"""

__version__ = "1.0.0"
