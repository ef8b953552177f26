"""
Default loyalty settings.

Shared between the settings store, the accrual trigger and the seed command
to avoid circular imports.
"""

CUSTOMER_POINTS_PER_ORDER = 'customer_points_per_order'
REPRESENTATIVE_POINTS_PER_ORDER = 'representative_points_per_order'

# key -> (value, description). Values are stored as strings; readers parse.
DEFAULT_SETTINGS = {
    CUSTOMER_POINTS_PER_ORDER: (
        '10',
        'Points credited to the customer for each completed order'
    ),
    REPRESENTATIVE_POINTS_PER_ORDER: (
        '10',
        'Points credited to the assigned representative for each completed order'
    ),
}


def default_value(key: str):
    """Fallback value for a known setting key, or None."""
    entry = DEFAULT_SETTINGS.get(key)
    return entry[0] if entry else None
