"""
Signal extraction package.

Modules
-------
taxonomy    Keyword, pattern and bucket tables with per-type weights
context     VisitorContext (query, referrer, device, hour, persona)
extractors  Pure extractor functions and extract_all()
"""
