"""
Triad3 - IRPF Declaration Import Package

Turns an uploaded Brazilian income-tax declaration (IRPF) PDF into
account-scoped financial records.

DESIGN PRINCIPLES:
1. Acknowledge fast, process in the background
2. The AI extracts, the pipeline decides what gets stored
3. Account identity comes from the caller, never from the document
4. One collection failing never takes the others down
5. Every step is auditable
"""

__version__ = "1.0.0"
__author__ = "Triad3 Team"
