"""
Utility helpers.

    - text.py: Whitespace normalization, log previews
    - timeit.py: Stage timing
"""
