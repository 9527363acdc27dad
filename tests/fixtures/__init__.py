"""Test fixtures for LawKita tests.

Provides:
- Raw document and extraction builders
- Canned extraction responses
- Scripted extraction clients
"""

from .cases import *
