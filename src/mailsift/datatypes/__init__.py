"""
Domain data structures shared across the engine.

- **rule_datatypes.py**: Rule enums (category, match type, match mode), the
  immutable ``FilterRule`` record and the ``RuleDraft``/``RuleUpdate`` DTOs.
- **email_datatypes.py**: ``EmailEvent`` as received from the edge relay and
  the ``Decision`` returned by the match engine.
- **dynamic_config.py**: ``DynamicConfig`` trigger/TTL settings for burst
  promotion, serialized to key/value rows.
"""
