"""
Tickets Module
==============

Ticket lifecycle bounded context: the state machine, the lifecycle service
and the ticket persistence layer.
"""
