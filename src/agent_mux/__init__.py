"""tmux-backed terminal provider for background coding agents."""
