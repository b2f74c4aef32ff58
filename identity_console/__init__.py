"""Spectro Cloud identity console.

Pulls users, roles and teams from the Spectro Cloud API through a local
relay, following continuation cursors, joins them into denormalised user
records and keeps them in a local SQLite cache refreshed on a schedule.
"""
