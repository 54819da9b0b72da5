"""
Kernel - identity, audit log, data models and domain errors.
"""
