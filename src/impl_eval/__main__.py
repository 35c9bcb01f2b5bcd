"""
Entry point for the impl-eval shell.

Usage:
    python -m impl_eval [--in FILE]
"""

from .shell import app

if __name__ == "__main__":
    app(prog_name="impl-eval")
