"""
Shared module for common utilities across the API and the queue workers.

STRUCTURE:
- shared.config: Configuration
  - settings.py: Environment config (pydantic-settings)
  - logging.py: Structured logging
  - constants.py: Job names, queue names, audit reasons

- shared.infrastructure: Database and Redis
  - db.py: SQLAlchemy sessions, run_in_transaction(), get_db_context()
  - correlation.py: Request/job correlation ids
  - events/: Redis pools, channels, event types

- shared.utils: Utilities
  - exceptions.py: HTTP-aware exceptions with auto-logging
  - money.py: Decimal rounding and comparison rules

IMPORT EXAMPLES:
    from shared.infrastructure.db import get_db, run_in_transaction
    from shared.config.settings import settings
    from shared.config.constants import JobNames, QueueNames
    from shared.utils.exceptions import NotFoundError, ValidationError
"""
