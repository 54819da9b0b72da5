"""
Assessment engine: levels, progression policy, session storage and the
one-question-at-a-time session lifecycle.
"""
