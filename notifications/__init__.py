"""
Notifications - delivery of triggered alerts
"""
