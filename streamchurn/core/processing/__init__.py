# streamchurn/core/processing/__init__.py

from .records import UserRecord, RECORD_COLUMNS, records_to_frame, frame_to_records
from .load_data import DataLoader, validate_records

__all__ = [

    # Record schema
    'UserRecord',
    'RECORD_COLUMNS',
    'records_to_frame',
    'frame_to_records',

    # Loading from postgresql or csv
    'DataLoader',
    'validate_records',

]
