"""
Bayesian mixed-effects logistic models of word prominence.

One model per standardized acoustic predictor:

    Prominence ~ 1 + z_x + (1 + z_x | Speaker) + (1 | Sentence) + (1 | Word)
"""

__version__ = "0.1.0"
