"""
Knowledge Relation Discovery

Discovers typed relations between knowledge items: semantic candidate
retrieval, LLM-assisted pairwise classification and confidence-gated
persistence, driven over a backlog of discovery tasks.
"""

__version__ = "1.0.0"
__author__ = "EKMS Team"
