"""
Job Cost Progress & Earned-Value engine.

Tracks capital-construction job costs against the Schedule of Values and
derives earned-value metrics per job and across a portfolio.
"""

__version__ = "1.0.0"
