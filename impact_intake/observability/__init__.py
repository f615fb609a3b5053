"""
Logging and metrics for the intake pipeline.
"""
