"""SwarmCheck command-line interface."""
