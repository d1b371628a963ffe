"""
Test Fixtures Package
"""

from .sample_data import (
    SAMPLE_USER_ID,
    SAMPLE_ANON_USER_ID,
    SAMPLE_SUBMISSION,
    SAMPLE_TASK_SUBMITTED,
    SAMPLE_TASK_PROCESSING,
    SAMPLE_TASK_SUCCEEDED,
    SAMPLE_TASK_REJECTED,
    SAMPLE_GATEWAY_500,
    SAMPLE_VIDEO_BYTES,
    SAMPLE_LEGACY_PROVIDER_ERROR,
    get_sample_submission,
)

__all__ = [
    'SAMPLE_USER_ID',
    'SAMPLE_ANON_USER_ID',
    'SAMPLE_SUBMISSION',
    'SAMPLE_TASK_SUBMITTED',
    'SAMPLE_TASK_PROCESSING',
    'SAMPLE_TASK_SUCCEEDED',
    'SAMPLE_TASK_REJECTED',
    'SAMPLE_GATEWAY_500',
    'SAMPLE_VIDEO_BYTES',
    'SAMPLE_LEGACY_PROVIDER_ERROR',
    'get_sample_submission',
]
