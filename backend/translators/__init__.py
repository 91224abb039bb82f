"""
Deterministic Translator Layer

Converts the in-memory campaign sequence to React Flow format.
All rendering data is derived here, separate from the sequence engine.
"""

from .reactflow_translator import ReactFlowTranslator

__all__ = ['ReactFlowTranslator']
