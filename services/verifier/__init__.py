"""
Verifier Service
================

Line-oriented TCP service that collects an age and a BMI from each client
and answers with a zero-knowledge eligibility proof result.
"""

__version__ = "0.1.0"
