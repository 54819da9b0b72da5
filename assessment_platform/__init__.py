"""
Competency Assessment Platform.

Progressive multiple-choice assessments across three steps (A1-C2) with
score-gated progression, certificates and email notifications.
"""
