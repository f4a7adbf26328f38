"""
Event type constants for signals published on Redis pub/sub.
"""

# =============================================================================
# Costing alerts
# =============================================================================

# A menu item's freshly computed margin fell below its organization's target
MARGIN_BELOW_THRESHOLD = "MARGIN_BELOW_THRESHOLD"

# Aggregate types carried by outbox rows
AGGREGATE_MENU_ITEM = "menu_item"

# Max serialized size of a published event, in bytes
MAX_EVENT_SIZE = 64 * 1024
