"""
Email classification and burst promotion.

- **rule_validation.py**: Checks rule drafts and updates before they are written
- **matcher.py**: Precompiled rule predicates
- **match_engine.py**: Whitelist / blacklist / dynamic evaluation of one email
- **subject_normalizer.py**: Campaign prefix stripping and subject hashing
- **burst_detection.py**: Pure window and time-span arithmetic
- **subject_tracker.py**: Stored subject occurrences and window counts
- **dynamic_rule_manager.py**: Promotion of bursts into dynamic rules and their expiry
"""
