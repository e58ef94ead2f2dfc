"""
pipewright: programmable process pipelines with pluggable stream filters.

Builds chains of child processes connected through pipes, like a shell
pipeline, and pumps their output through filter stages without threads.
"""

__version__ = "0.1.0"
