"""Keystone - natural-language intake for rental property CRM.

Layers:
    - core: Configuration, logging, exceptions, keyed locks
    - db: Database (the storage collaborator) and models
    - ai: Pure text understanding (classifier, time resolver, discovery)
    - engine: Feedback interviews, conflict checks, voice scheduling
    - api: HTTP boundary
"""

__version__ = "0.1.0"
