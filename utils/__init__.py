"""
Utilities Package
Configuration, errors, logging, gas pricing and cancellation
"""
