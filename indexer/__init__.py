"""
Launchpad indexer package - chain access, event indexing, metrics and workers
"""
__version__ = '1.0.0'
