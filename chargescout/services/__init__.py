"""
Services package for ChargeScout.
"""
