"""
Catalog reconciliation.

Compares the object catalogs of a master and a slave database, optionally
against an approved manifest, with a streaming k-way merge. Objects present
on both sides are compared by normalized definition.
"""

__version__ = "1.0.0"
