"""
Operator console.

- **control_panel.py**: prompt_toolkit command loop with status, cache
  refresh, sweep, subject, rule, config and performance commands.
"""
