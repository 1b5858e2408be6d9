"""
Input/output collaborators for rawlinear: RAW decoding, exiftool metadata
access, ICC profile lookup and file placement.
"""
