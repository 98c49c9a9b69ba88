"""
Minimal TCP relay: listen or connect, then pass bytes between the
connection and standard input/output, or hand the connection to a
command.
"""

__version__ = '1.0.0'
