"""Core building blocks: errors, configuration and the tabular protocol."""
