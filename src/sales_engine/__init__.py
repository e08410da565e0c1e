"""
Sales Engine Package

Pricing-rule resolution, GST-style tax splitting and invoice assembly for B2B
equipment sales. Resolves product → rule → price with base-price fallback and
turns paid orders into one invoice each.
"""

__version__ = "1.0.0"
