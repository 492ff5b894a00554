"""
Repositories over the rule store tables.

- **rule_repo.py**: ``RuleRepository`` for ``filter_rules``
- **subject_tracker_repo.py**: ``SubjectTrackerRepo`` for ``email_subject_tracker``
- **rule_stats_repo.py**: ``StatsRecorder`` for ``rule_stats`` and ``global_stats``
"""
