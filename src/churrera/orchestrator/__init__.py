"""Workflow engine that drives remote coding agents.

Why a polling loop instead of callbacks or a task queue?
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
The remote agents already run asynchronously on their side; the engine only
has to notice state changes and react. Every pass re-reads jobs from the
SQLite store, moves each one at most one step forward and returns, so a pass
can be repeated at any interval and resumed after a restart without any
in-process state:

- the dispatcher routes each unfinished job by shape (sequence, parallel
  parent, fan-out child);
- handlers launch agents, send follow-ups one per pass, and fire fallback
  prompts once a job outlives its timeout;
- a finished parallel parent has its ``<result>`` block extracted and turned
  into child jobs, one per value.

A single active poller per store is assumed; nothing here locks jobs across
processes.
"""
