"""Build-info accumulator.

Records fragments of CI build metadata (modules, environment, VCS) produced by
independent tool invocations into a per-build staging directory, and later
consolidates them into one build-info document.
"""

__version__ = "0.1.0"
