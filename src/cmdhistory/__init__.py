"""
cmdhistory - Local history of remotely-executed commands.

cmdhistory records what a remote execution service reports about the
commands a client issues, so the client can survive restarts, re-attach
to in-flight output, and browse past commands offline.
It provides:
- Upserts of command metadata and invocation lists
- Order-preserving, atomic appends of streamed stdout/stderr
- Typed queries over stored commands and their output

Example usage:
    $ cmdhistory list-commands --db history.db
    $ cmdhistory show-output <command_id> --db history.db
"""

__version__ = "0.1.0"
__author__ = "cmdhistory Contributors"

__all__ = [
    "__version__",
    "__author__",
]
