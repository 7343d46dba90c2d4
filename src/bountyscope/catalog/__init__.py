"""
Catalog module - Bug bounty programs and their repositories.

- BountyCatalog: program index and details, filtering by language and reward
- RepositoryFilter: repository extraction and cross-referencing
"""

from .bounty_catalog import BountyCatalog, CatalogError, HighValueProject, QualifyingProgram
from .repository_filter import RepositoryFilter


__all__ = [
    "BountyCatalog",
    "RepositoryFilter",
    # Data structures
    "HighValueProject",
    "QualifyingProgram",
    # Exceptions
    "CatalogError",
]
