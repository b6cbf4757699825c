"""
Celery task entry points for the alert worker
"""
