"""
FTGI — Composite Trust Score Engine
Fuses AI verification checks, buyer reviews, webinar votes and expert
panel assessments into one bounded 0-100 trust score per factory.
"""
__version__ = "1.0.0"
