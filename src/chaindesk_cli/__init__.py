"""chaindesk command-line interface."""
