"""
Core models, validators and field schema registry.
"""
