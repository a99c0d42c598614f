"""Shellport - persistent browser terminals backed by tmux"""

__version__ = "0.1.0"
