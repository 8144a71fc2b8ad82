"""This module manages the category, location and district vocabularies."""
from .entities import NewTaxonomyValue, TaxonomyEntry, TaxonomySnapshot, Vocabulary
