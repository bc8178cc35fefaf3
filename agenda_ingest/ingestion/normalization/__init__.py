"""
Text normalization for raw event candidates.

Title extraction, Portuguese date/time parsing, location construction and
price parsing. Entry point: ``normalizer.TextNormalizer``.
"""
