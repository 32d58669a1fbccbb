"""
learnpath: adaptive learning-path engine.

Placement scoring, difficulty adaptation, misconception detection and
remediation/stretch entry insertion over a pluggable activity store.
"""

__version__ = "1.0.0"
