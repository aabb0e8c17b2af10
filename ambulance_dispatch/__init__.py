"""
Ambulance dispatch engine: nearest-unit matching, the dispatch lifecycle state
machine, time-paced movement along street routes and live event propagation.
"""

__version__ = '1.0.0'
