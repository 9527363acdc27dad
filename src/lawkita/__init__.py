"""
LawKita - legal-case entity resolution pipeline

Ingests news articles, court-judgment listings and directory pages,
extracts structured case records with a language model, resolves
lawyer names against the professional registry and publishes merged
cases behind a confidence gate.
"""

__version__ = "0.1.0"
