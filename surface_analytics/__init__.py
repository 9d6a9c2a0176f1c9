"""
Surface Analytics

First-party analytics collector: an instrumentation agent that batches
events on the client and an ingestion service that records them.
"""

__version__ = "1.0.0"
