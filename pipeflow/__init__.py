"""
pipeflow: supervisor for a pipeline build tool with live progress reporting.
"""

__version__ = "0.1.0"
