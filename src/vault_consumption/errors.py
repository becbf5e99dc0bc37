from __future__ import annotations


class InputError(Exception):
    """Fatal input problem: missing file, invalid JSON, bad flag value. Maps to exit code 2."""
