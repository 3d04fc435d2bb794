"""
Dataset input/output.
"""

from .dataset import read_rows, read_header, read_input_keys, write_rows

__all__ = [
    'read_rows',
    'read_header',
    'read_input_keys',
    'write_rows'
]
