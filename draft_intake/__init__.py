"""
Draft intake core package.

This package focuses on the intake subsystem of a content project. It exposes
dataclasses for references, extraction jobs and project versions, a pluggable
set of extraction strategies, a dispatcher that drives extraction jobs through
queued -> running -> terminal, and the consolidation step that turns extracted
text into a single prompt for draft generation.
"""
