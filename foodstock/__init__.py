"""FoodStock: multi-location stock control with WAC valuation and period close"""

__version__ = "1.0.0"
