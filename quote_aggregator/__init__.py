"""
Quote Aggregator Service
Aggregates equity quotes from several unreliable providers behind one read interface.
"""

__version__ = "1.0.0"
__author__ = "Quote Aggregator Team"
__description__ = "Multi-provider quote aggregation with circuit breakers and cross-validation"
