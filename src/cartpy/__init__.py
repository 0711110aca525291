# cartpy/__init__.py
"""
cartpy: CART decision trees with minimal cost-complexity pruning in pure
Python (scikit-learn style).

Exports:
    - CartClassifier
    - CartConfig
    - ConfigurationError, DataError
"""
from .config import CartConfig
from .exceptions import ConfigurationError, DataError
from .tree import CartClassifier

__all__ = ["CartClassifier", "CartConfig", "ConfigurationError", "DataError"]
__version__ = "0.1.0"
