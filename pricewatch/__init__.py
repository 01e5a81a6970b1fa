"""PriceWatch - price alert monitoring service.

Refreshes market prices on a fixed cadence and fires user-defined
price alerts exactly once when their condition becomes true.
"""

__version__ = "0.1.0"
