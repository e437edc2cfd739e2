"""
Utility Modules for log-narrator.

    - text.py: Code-block masking and log previews
    - timeit.py: Stage timing
"""
