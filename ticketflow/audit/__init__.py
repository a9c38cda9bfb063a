"""
Audit Module
============

Write-only sink of structured audit events: who did what to which ticket
or agent, with before/after values.
"""
