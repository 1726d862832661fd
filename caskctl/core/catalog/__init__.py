"""
Descriptor catalog — loading, validating and serializing cask descriptors.
"""

from caskctl.core.catalog.catalog import Catalog, CatalogCheck, check_directories
from caskctl.core.catalog.parser import dump_descriptor, load_descriptor, load_descriptor_file

__all__ = [
    "Catalog",
    "CatalogCheck",
    "check_directories",
    "dump_descriptor",
    "load_descriptor",
    "load_descriptor_file",
]
