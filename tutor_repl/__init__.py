"""
Tutorial REPL engine: stateful, sandboxed code execution sessions for learners.
"""

__version__ = "0.1.0"
