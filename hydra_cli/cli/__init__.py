"""
CLI Module.

Command-line surface built with Typer for parsing and Rich for output.

Architecture:
- Commands only parse arguments and record an Invocation on the Session
- The dispatcher executes it against the profile store or registry engine
- The formatter renders the result; the driver performs one shutdown

Usage:
    hydra-cli --help
    hydra-cli nodes
    hydra-cli shell  # Interactive mode
"""
