"""Environment-variable-based configuration for the plan tracker server."""

import os

STORAGE_BACKEND = os.environ.get('PLAN_TRACKER_STORAGE', 'sqlite')
DATABASE = os.environ.get(
    'PLAN_TRACKER_DB',
    os.path.join(os.path.dirname(__file__), 'data', 'fitness.db'),
)
LOG_LEVEL = os.environ.get('PLAN_TRACKER_LOG_LEVEL', 'INFO')
RECENT_WORKOUTS = int(os.environ.get('PLAN_TRACKER_RECENT_WORKOUTS', '5'))
