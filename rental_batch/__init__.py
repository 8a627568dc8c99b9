"""
rental_batch -- periodic jobs for the rental kernel.

Provides the overdue sweep (ACTIVE rentals past their inclusive end date
become OVERDUE) and an in-process polling scheduler that runs it.

Architecture:
    rental_batch/ is a top-level package.  Nothing in rental_kernel
    imports from rental_batch.

Invariants:
    - Clock injection: "today" always comes from the injected Clock.
    - Idempotency: a second sweep on the same day changes nothing.
    - Per-rental SAVEPOINT isolation: one failing row does not abort the run.
    - Graceful shutdown: the scheduler stops between ticks.
"""
