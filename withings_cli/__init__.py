"""
Withings CLI.

Command-line client for the Withings Health Solutions API.
"""

__version__ = "0.1.0"
