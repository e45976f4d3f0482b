"""
PlanFinder - catalog and search for pre-designed housing plans

Parses the catalog's plan filename convention into structured metadata,
stores uploaded plans per company and filters them for the search screen.
"""

__version__ = "0.1.0"
__author__ = "PlanFinder Team"
