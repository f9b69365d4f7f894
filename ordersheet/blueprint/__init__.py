# Blueprint
# Canonical fields, header synonyms and template structure analysis

from .fields import CanonicalFields, FieldDefinition
from .synonyms import SynonymDictionary, SynonymEntry
from .template_scanner import TemplateAnalysis, TemplateStructureAnalyzer

__all__ = ['CanonicalFields', 'FieldDefinition', 'SynonymDictionary', 'SynonymEntry',
           'TemplateAnalysis', 'TemplateStructureAnalyzer']
