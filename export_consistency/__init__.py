"""Export Consistency Engine.

Static analysis of TypeScript/JavaScript module exports: builds an export
inventory per file, detects cross-file inconsistencies, proposes and applies
machine-applicable fixes, and renders multi-format reports.
"""

__version__ = "0.1.0"
