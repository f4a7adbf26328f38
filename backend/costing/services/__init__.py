"""
Application services.

- costing/: the cost cascade stages (run by queue jobs)
- domain/: mutation entry points used by the HTTP API and CLI
- events/: outbox delivery of margin alerts
"""
