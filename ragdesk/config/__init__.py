"""Configuration: environment-driven Settings plus the YAML defaults loader."""
