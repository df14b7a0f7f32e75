from .inspection import command_dump, command_matrix, command_symbols
from .verification import command_check

__all__ = [
    "command_check",
    "command_dump",
    "command_matrix",
    "command_symbols",
]
