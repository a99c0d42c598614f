"""tmux session control for the terminal broker."""

from .controller import TmuxController, build_environment

__all__ = ['TmuxController', 'build_environment']
