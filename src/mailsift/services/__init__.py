"""
Request-level services.

- **filter_engine.py**: ``FilterEngine`` chooses the rule snapshot (cache or store) and runs the match engine
- **email_service.py**: ``EmailService.process_email`` decides, then records stats and feeds burst detection in a background task
"""
