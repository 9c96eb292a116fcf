"""
Taxonomy Package

Static, versioned pillar → topic hierarchy used to ground and validate every
classification.

Public API::

    from insight_vault.taxonomy import default_taxonomy

    taxonomy = default_taxonomy()
    pillar, topic = taxonomy.resolve_or_default("P6", "P6.07")
"""

from insight_vault.taxonomy.catalog import TAXONOMY_VERSION
from insight_vault.taxonomy.registry import Pillar, Taxonomy, Topic, default_taxonomy

__all__ = [
    "TAXONOMY_VERSION",
    "Pillar",
    "Taxonomy",
    "Topic",
    "default_taxonomy",
]
