"""
Core domain: models, validation rules and the validation engine.
"""
