"""Work-item orchestration for concurrently running stage agents.

Agents never talk to each other. Each instance polls a shared SQLite store,
claims one ready item with a conditional update, runs the stage processor for
its agent type, and hands off by completing the item and inserting ready
children that the next stage's agents will claim. Failures are escalated to a
human instead of retried.
"""
