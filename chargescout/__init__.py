"""
ChargeScout - nearby EV charging stations with live connector availability.
"""

__version__ = "0.1.0"
