"""
Progressive Loan Engine

Day-accurate progressive loan schedules with Decimal money math, partial
rescheduling that leaves settled history untouched and capitalized income
amortization.
"""

__version__ = "1.0.0"
