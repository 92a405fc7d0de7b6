"""Prompt-to-Mermaid diagram generation service."""

__version__ = "0.1.0"
