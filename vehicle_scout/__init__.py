"""
Vehicle Scout: multi-site used vehicle listing acquisition and reconciliation.
"""

__version__ = "0.1.0"
