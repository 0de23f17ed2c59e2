"""
PM Board
Blueprint registry.
"""

from flask import request


def request_data() -> dict:
    """JSON body of the current request, ``{}`` when absent or not an object."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}
