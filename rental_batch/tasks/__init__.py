from rental_batch.tasks.overdue_sweep import OverdueSweepTask, SweepResult

__all__ = ["OverdueSweepTask", "SweepResult"]
