"""
In-memory rule cache.

- **pattern_cache.py**: ``PatternCache`` and the immutable ``RuleSnapshot`` it publishes
"""
