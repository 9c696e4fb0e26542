# Task board: columns, ordering, soft-delete lifecycle, and client sync.
#
# Components:
#   errors.py      - Error taxonomy (validation, not found, invalid state, store)
#   schema.py      - Data model (Task, Column, Priority) and lifecycle state machine
#   ordering.py    - Pure order computation for inserts and drag-and-drop moves
#   store.py       - SQLite persistence layer, partitioned by owner
#   config.py      - YAML + environment configuration, logging setup
#   events.py      - UI refresh subscriptions
#   client.py      - HTTP client for the task API
#   sync.py        - Board synchronizer (optimistic moves, refetch on failure)
#   recycle_bin.py - Recycle bin controller (restore / purge)
