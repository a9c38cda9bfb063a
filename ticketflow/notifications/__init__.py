"""
Notifications Module
====================

Fire-and-continue delivery of webhook events and emails. Callers never wait
for delivery and never see delivery failures.
"""
