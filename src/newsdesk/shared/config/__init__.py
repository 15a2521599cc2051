"""YAML configuration and source lists."""
